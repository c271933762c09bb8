"""注册中心门面: 组合 Mutex / GroupIndex / InstanceManager / GarbageCollector。"""
from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Any, Callable

from redis.asyncio import Redis

from instance_registry.common.schemas import GroupSummary, InstanceRecord
from instance_registry.registry.gc import GarbageCollector, SweepStats
from instance_registry.registry.groups import GroupIndex
from instance_registry.registry.instances import InstanceManager
from instance_registry.store.mutex import Mutex


@dataclass
class RegistryService:
    mutex: Mutex
    groups: GroupIndex
    instances: InstanceManager
    gc: GarbageCollector

    async def list_groups(self) -> list[GroupSummary]:
        await self.gc.maybe_sweep()
        return await self.groups.summaries()

    async def list_instances(self, gid: str) -> list[InstanceRecord] | None:
        await self.gc.maybe_sweep()
        return await self.instances.list_instances(gid)

    async def upsert(self, gid: str, iid: str, meta: dict[str, Any]) -> InstanceRecord:
        return await self.instances.upsert(gid, iid, meta)

    async def remove(self, gid: str, iid: str) -> bool:
        return await self.instances.remove(gid, iid)


def build_registry(
    redis: Redis,
    *,
    gc_interval: float,
    instance_timeout: float,
    mutex_timeout: float,
    clock: Callable[[], float] = time.time,
    stats: SweepStats | None = None,
) -> RegistryService:
    mutex = Mutex(redis, mutex_timeout, clock=clock)
    groups = GroupIndex(redis, clock=clock)
    return RegistryService(
        mutex=mutex,
        groups=groups,
        instances=InstanceManager(redis, mutex, groups, clock=clock),
        gc=GarbageCollector(
            redis, mutex, groups,
            interval=gc_interval,
            instance_timeout=instance_timeout,
            clock=clock,
            stats=stats,
        ),
    )
