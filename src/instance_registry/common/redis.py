"""Redis 连接管理。支持直连与 Sentinel 两种模式。"""
from __future__ import annotations
import redis.asyncio as aioredis
from instance_registry.settings import Settings, settings as default_settings
import structlog

logger = structlog.get_logger()

redis_client: aioredis.Redis | None = None


def parse_sentinel_hosts(hosts: str) -> list[tuple[str, int]]:
    """"h1:26379,h2:26380" → [("h1", 26379), ("h2", 26380)]"""
    pairs = []
    for item in hosts.split(","):
        item = item.strip()
        if not item:
            continue
        host, _, port = item.rpartition(":")
        pairs.append((host, int(port)))
    return pairs


async def get_redis(cfg: Settings | None = None) -> aioredis.Redis:
    global redis_client
    cfg = cfg or default_settings
    if redis_client is None:
        if cfg.redis_sentinel_hosts:
            sentinels = parse_sentinel_hosts(cfg.redis_sentinel_hosts)
            logger.info("redis_sentinel_connecting",
                        master=cfg.redis_sentinel_master, sentinels=len(sentinels))
            sentinel = aioredis.Sentinel(sentinels, decode_responses=True)
            redis_client = sentinel.master_for(
                cfg.redis_sentinel_master, decode_responses=True)
        else:
            redis_client = aioredis.from_url(cfg.redis_url, decode_responses=True)
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
