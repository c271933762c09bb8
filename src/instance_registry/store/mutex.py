"""
基于普通键的轮询互斥锁。

- 单键 mutex:{name} 保存获取时间戳
- 键不存在 → 写入当前时间, 视为持有
- 存在但已超过 timeout → 视为遗弃, 直接抢占
- 否则休眠 timeout / 25 后重试, 无上限

存储不提供 CAS, 读与写之间没有原子性: 两个调用方可能同时认为自己持有锁。
这是已知且接受的竞态, 锁仅为建议性 (advisory)。
"""
from __future__ import annotations
import asyncio
import contextlib
import time
from typing import AsyncIterator, Awaitable, Callable

from redis.asyncio import Redis
from instance_registry.store.keys import mutex_key
import structlog

logger = structlog.get_logger()

POLL_FRACTION = 25


class Mutex:
    def __init__(
        self,
        redis: Redis,
        timeout: float,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._redis = redis
        self._timeout = timeout
        self._clock = clock
        self._sleep = sleep

    @property
    def poll_interval(self) -> float:
        return self._timeout / POLL_FRACTION

    async def acquire(self, name: str) -> None:
        key = mutex_key(name)
        while True:
            raw = await self._redis.get(key)
            if raw is None:
                break
            started = float(raw)
            if started + self._timeout < self._clock():
                logger.debug("mutex_expired", name=name, started=started)
                break
            logger.debug("mutex_waiting", name=name)
            await self._sleep(self.poll_interval)

        await self._redis.set(key, str(self._clock()))

    async def release(self, name: str) -> None:
        await self._redis.delete(mutex_key(name))

    @contextlib.asynccontextmanager
    async def held(self, name: str) -> AsyncIterator[None]:
        await self.acquire(name)
        try:
            yield
        finally:
            await self.release(name)
