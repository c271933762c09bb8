"""
过期实例与空组回收 (GC)。

由读请求惰性触发, 无后台定时器。两级闸门:
1. 进程内 last_run 未到间隔 → 跳过 (不访问存储)
2. 存储中 last_gc 未到间隔 → 跳过 (其他进程刚执行过)

执行流程:
1. 写 last_gc (宣告开始)
2. 获取全局列表锁
3. 并发处理每个组: 获取组锁, 读索引, 并发检查每个实例,
   记录缺失或 updated_at + instance_timeout <= now 的实例被删除
4. 索引为空的组标记删除, 其余写回裁剪后的索引
5. 一次性删除标记的组 (记录 + 索引 + 全局列表)
6. 再写 last_gc (宣告结束), 更新进程内 last_run
7. 释放全局列表锁与全部组锁 (无论成功与否)
"""
from __future__ import annotations
import time
from dataclasses import dataclass, field
from typing import Callable

from redis.asyncio import Redis

from instance_registry.common.concurrency import gather_all
from instance_registry.common.schemas import dump_ids, load_ids, load_instance
from instance_registry.registry.groups import GroupIndex
from instance_registry.store.keys import (
    LAST_GC_KEY, group_index_key, group_lock_name, instance_key, list_lock_name,
)
from instance_registry.store.mutex import Mutex
import structlog

logger = structlog.get_logger()


def is_due(now: float, last_run: float, interval: float) -> bool:
    return last_run + interval <= now


def should_sweep(now: float, local_last: float, shared_last: float, interval: float) -> bool:
    """进程内与共享时间戳都已超过间隔时才执行。"""
    return is_due(now, local_last, interval) and is_due(now, shared_last, interval)


def is_expired(updated_at: float, timeout: float, now: float) -> bool:
    """边界包含: updated_at + timeout == now 视为过期。"""
    return updated_at + timeout <= now


@dataclass
class SweepStats:
    """GC 运行统计。由调用方注入, 便于测试断言。"""
    runs: int = 0
    expired_instances: int = 0
    removed_groups: int = 0


@dataclass
class SweepReport:
    started_at: float
    finished_at: float = 0.0
    scanned_groups: int = 0
    expired: dict[str, list[str]] = field(default_factory=dict)
    removed_groups: list[str] = field(default_factory=list)


class GarbageCollector:
    def __init__(
        self,
        redis: Redis,
        mutex: Mutex,
        groups: GroupIndex,
        interval: float,
        instance_timeout: float,
        clock: Callable[[], float] = time.time,
        stats: SweepStats | None = None,
    ) -> None:
        self._redis = redis
        self._mutex = mutex
        self._groups = groups
        self._interval = interval
        self._instance_timeout = instance_timeout
        self._clock = clock
        self.stats = stats if stats is not None else SweepStats()
        self.last_run: float = 0.0

    async def should_run(self) -> bool:
        now = self._clock()
        if not is_due(now, self.last_run, self._interval):
            return False
        # 在第一次 await 之前占用本地闸门, 同进程并发请求不会再通过
        previous = self.last_run
        self.last_run = now
        try:
            shared = float(await self._redis.get(LAST_GC_KEY) or 0)
        except Exception:
            self.last_run = previous
            raise
        if not should_sweep(now, previous, shared, self._interval):
            # 同步共享时间戳
            self.last_run = max(previous, shared)
            return False
        return True

    async def maybe_sweep(self) -> SweepReport | None:
        if not await self.should_run():
            return None
        return await self.sweep()

    async def sweep(self) -> SweepReport:
        now = self._clock()
        report = SweepReport(started_at=now)
        self.stats.runs += 1
        logger.info("gc_start", run=self.stats.runs)

        await self._redis.set(LAST_GC_KEY, str(now))
        self.last_run = now

        locked: list[str] = []
        await self._mutex.acquire(list_lock_name())
        try:
            gids = await self._groups.list_group_ids()
            report.scanned_groups = len(gids)
            remaining = await gather_all(
                *(self._sweep_group(gid, now, locked, report) for gid in gids))

            empty = [gid for gid, ids in zip(gids, remaining) if not ids]
            if empty:
                await self._groups.remove_groups(empty)
                report.removed_groups = empty
                self.stats.removed_groups += len(empty)

            finished = self._clock()
            await self._redis.set(LAST_GC_KEY, str(finished))
            self.last_run = finished
            report.finished_at = finished
        finally:
            # 释放失败会取代 sweep 本身的异常, 先记录再上抛
            try:
                await gather_all(
                    self._mutex.release(list_lock_name()),
                    *(self._mutex.release(group_lock_name(gid)) for gid in locked),
                )
            except Exception:
                logger.exception("gc_lock_release_failed", groups=locked)
                raise

        logger.info("gc_end",
                    scanned=report.scanned_groups,
                    expired=sum(len(v) for v in report.expired.values()),
                    removed_groups=len(report.removed_groups))
        return report

    async def _sweep_group(
        self, gid: str, now: float, locked: list[str], report: SweepReport,
    ) -> list[str]:
        """处理单个组, 返回保留的 id。组锁直到整个 sweep 结束才释放。"""
        await self._mutex.acquire(group_lock_name(gid))
        locked.append(gid)

        index_key = group_index_key(gid)
        ids = load_ids(await self._redis.get(index_key))
        alive = await gather_all(*(self._check_instance(gid, iid, now) for iid in ids))
        kept = [iid for iid, ok in zip(ids, alive) if ok]
        expired = [iid for iid, ok in zip(ids, alive) if not ok]

        if expired:
            report.expired[gid] = expired
            self.stats.expired_instances += len(expired)
        if kept:
            logger.debug("gc_group_kept", group=gid, alive=len(kept), expired=len(expired))
            await self._redis.set(index_key, dump_ids(kept))
        else:
            logger.info("gc_group_empty", group=gid)
        return kept

    async def _check_instance(self, gid: str, iid: str, now: float) -> bool:
        """存活返回 True; 过期或记录缺失则删除并返回 False。"""
        key = instance_key(gid, iid)
        record = load_instance(await self._redis.get(key))
        if record is not None and not is_expired(record.updated_at, self._instance_timeout, now):
            return True
        logger.info("instance_expired", group=gid, id=iid, missing=record is None)
        await self._redis.delete(key)
        return False
