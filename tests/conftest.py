"""全局 pytest fixtures — 基于 dict 的 Redis 替身 + 可控时钟。"""
import asyncio
import pytest
from unittest.mock import AsyncMock

from instance_registry.registry.gc import SweepStats
from instance_registry.registry.service import build_registry


class FakeClock:
    """手动推进的时钟。"""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_redis(yielding: bool = False) -> AsyncMock:
    """
    get/set/delete/exists/flushall 作用于 redis.data。

    yielding=False 时每个调用不让出事件循环 (单进程内读写天然串行);
    yielding=True 时每次调用前 sleep(0), 用于暴露 读-写 之间的竞态。
    """
    data: dict[str, str] = {}

    def _norm(value):
        return value.decode() if isinstance(value, bytes) else str(value)

    def _get(key):
        return data.get(key)

    def _set(key, value, **kwargs):
        data[key] = _norm(value)
        return True

    def _delete(*keys):
        return sum(1 for k in keys if data.pop(k, None) is not None)

    def _exists(*keys):
        return sum(1 for k in keys if k in data)

    def _flushall():
        data.clear()
        return True

    def _wrap(fn):
        if not yielding:
            return fn

        async def _yield_then(*args, **kwargs):
            await asyncio.sleep(0)
            return fn(*args, **kwargs)
        return _yield_then

    redis = AsyncMock()
    redis.data = data
    redis.get = AsyncMock(side_effect=_wrap(_get))
    redis.set = AsyncMock(side_effect=_wrap(_set))
    redis.delete = AsyncMock(side_effect=_wrap(_delete))
    redis.exists = AsyncMock(side_effect=_wrap(_exists))
    redis.flushall = AsyncMock(side_effect=_wrap(_flushall))
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_redis():
    return make_redis()


@pytest.fixture
def stats():
    return SweepStats()


@pytest.fixture
def registry(memory_redis, clock, stats):
    """确定性时钟: GC 间隔 60s, 实例超时 100s, 锁超时 2s。"""
    return build_registry(
        memory_redis,
        gc_interval=60.0,
        instance_timeout=100.0,
        mutex_timeout=2.0,
        clock=clock,
        stats=stats,
    )


@pytest.fixture
def live_registry(memory_redis, stats):
    """真实时钟 + 短锁超时, 用于并发场景。"""
    return build_registry(
        memory_redis,
        gc_interval=3600.0,
        instance_timeout=3600.0,
        mutex_timeout=1.0,
        stats=stats,
    )


@pytest.fixture
def yielding_redis():
    return make_redis(yielding=True)


@pytest.fixture
def racy_registry(yielding_redis, stats):
    """真实时钟 + 每次存储调用都让出事件循环, 锁的 读-写 竞态可被触发。"""
    return build_registry(
        yielding_redis,
        gc_interval=3600.0,
        instance_timeout=3600.0,
        mutex_timeout=1.0,
        stats=stats,
    )
