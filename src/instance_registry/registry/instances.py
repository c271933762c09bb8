"""
实例管理。

锁顺序: 全局组列表锁 → 组锁 (与 GC 一致, 任何调用点都不得反转)。
upsert / remove 先只持有组锁完成常规路径; 当需要新建或删除组时,
释放组锁, 按 列表锁 → 组锁 的顺序重新获取后重读状态再执行。

心跳保留已存储的 meta 与 created_at, 只刷新 updated_at 与组的 last_updated_at。
"""
from __future__ import annotations
import time
from typing import Any, Callable

from redis.asyncio import Redis

from instance_registry.common.concurrency import gather_all
from instance_registry.common.schemas import (
    GroupRecord, InstanceRecord, dump_ids, dump_record,
    load_group, load_ids, load_instance,
)
from instance_registry.registry.groups import GroupIndex
from instance_registry.store.keys import (
    group_index_key, group_key, group_lock_name, instance_key, list_lock_name,
)
from instance_registry.store.mutex import Mutex
import structlog

logger = structlog.get_logger()


class InstanceManager:
    def __init__(
        self,
        redis: Redis,
        mutex: Mutex,
        groups: GroupIndex,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._mutex = mutex
        self._groups = groups
        self._clock = clock

    # ─── 公共入口 (自行加锁) ───

    async def upsert(self, gid: str, iid: str, meta: dict[str, Any]) -> InstanceRecord:
        """新建实例或心跳。"""
        async with self._mutex.held(group_lock_name(gid)):
            group, current = await self._read(gid, iid)
            if group is not None:
                return await self._save(group, gid, iid, current, meta)

        # 组不存在: 需要全局列表锁
        async with self._mutex.held(list_lock_name()):
            async with self._mutex.held(group_lock_name(gid)):
                group, current = await self._read(gid, iid)
                if group is not None:
                    # 等锁期间已被并发请求创建
                    return await self._save(group, gid, iid, current, meta)
                return await self._create_with_group(gid, iid, meta)

    async def remove(self, gid: str, iid: str) -> bool:
        """删除实例。组不存在时返回 False。组内最后一个实例被删时一并删除组。"""
        async with self._mutex.held(group_lock_name(gid)):
            group, ids = await self._read_index(gid)
            if group is None:
                return False
            remaining = [i for i in ids if i != iid]
            if remaining:
                await self._prune(gid, iid, remaining)
                return True

        async with self._mutex.held(list_lock_name()):
            async with self._mutex.held(group_lock_name(gid)):
                group, ids = await self._read_index(gid)
                remaining = [i for i in ids if i != iid]
                if remaining:
                    await self._prune(gid, iid, remaining)
                else:
                    logger.info("instance_removed", group=gid, id=iid, last=True)
                    await gather_all(
                        self._redis.delete(instance_key(gid, iid)),
                        self._groups.remove_group(gid),
                    )
                return group is not None

    # ─── 读取 (无锁) ───

    async def get(self, gid: str, iid: str) -> InstanceRecord | None:
        return load_instance(await self._redis.get(instance_key(gid, iid)))

    async def list_instances(self, gid: str) -> list[InstanceRecord] | None:
        """组内全部实例; 组索引不存在返回 None。"""
        index_raw = await self._redis.get(group_index_key(gid))
        if index_raw is None:
            logger.info("group_missing", group=gid)
            return None
        ids = load_ids(index_raw)
        logger.debug("instances_fetching", group=gid, count=len(ids))
        raws = await gather_all(*(self._redis.get(instance_key(gid, i)) for i in ids))
        return [rec for rec in map(load_instance, raws) if rec is not None]

    # ─── 内部 (调用方持有组锁) ───

    async def _read(
        self, gid: str, iid: str,
    ) -> tuple[GroupRecord | None, InstanceRecord | None]:
        group_raw, instance_raw = await gather_all(
            self._redis.get(group_key(gid)),
            self._redis.get(instance_key(gid, iid)),
        )
        return load_group(group_raw), load_instance(instance_raw)

    async def _read_index(self, gid: str) -> tuple[GroupRecord | None, list[str]]:
        group_raw, index_raw = await gather_all(
            self._redis.get(group_key(gid)),
            self._redis.get(group_index_key(gid)),
        )
        return load_group(group_raw), load_ids(index_raw)

    async def _save(
        self,
        group: GroupRecord,
        gid: str,
        iid: str,
        current: InstanceRecord | None,
        meta: dict[str, Any],
    ) -> InstanceRecord:
        now = self._clock()
        if current is None:
            record = InstanceRecord(
                id=iid, group=gid, created_at=now, updated_at=now, meta=meta)
            await gather_all(
                self._add_instance(record),
                self._groups.touch(group, now),
            )
            return record

        record = current.model_copy(update={"updated_at": now})
        logger.debug("instance_heartbeat", group=gid, id=iid)
        await gather_all(
            self._redis.set(instance_key(gid, iid), dump_record(record)),
            self._groups.touch(group, now),
        )
        return record

    async def _add_instance(self, record: InstanceRecord) -> None:
        """写实例记录并把 id 追加到组索引 (不重复)。不修改组记录。"""
        gid, iid = record.group, record.id
        logger.info("instance_added", group=gid, id=iid)
        index_key = group_index_key(gid)
        ids = load_ids(await self._redis.get(index_key))
        if iid not in ids:
            ids.append(iid)
        await gather_all(
            self._redis.set(instance_key(gid, iid), dump_record(record)),
            self._redis.set(index_key, dump_ids(ids)),
        )

    async def _create_with_group(
        self, gid: str, iid: str, meta: dict[str, Any],
    ) -> InstanceRecord:
        """
        新组的第一个实例。调用方持有列表锁与组锁。

        组记录缺失但索引残留时, 合并残留 id, 不覆盖其实例。
        """
        stale = load_ids(await self._redis.get(group_index_key(gid)))
        now = self._clock()
        record = InstanceRecord(id=iid, group=gid, created_at=now, updated_at=now, meta=meta)
        logger.info("instance_added", group=gid, id=iid, new_group=True, stale=len(stale))
        await gather_all(
            self._redis.set(instance_key(gid, iid), dump_record(record)),
            self._groups.add_group(gid, iid, carried=stale),
        )
        return record

    async def _prune(self, gid: str, iid: str, remaining: list[str]) -> None:
        logger.info("instance_removed", group=gid, id=iid, last=False)
        await gather_all(
            self._redis.delete(instance_key(gid, iid)),
            self._redis.set(group_index_key(gid), dump_ids(remaining)),
        )
