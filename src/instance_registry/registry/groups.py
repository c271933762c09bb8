"""
组索引管理。

写操作 (add_group / remove_group(s) / alter_global_list) 要求调用方已持有
全局组列表锁; touch 要求调用方持有该组的组锁。本模块不缓存任何状态,
每次调用都重新读取存储。
"""
from __future__ import annotations
import time
from typing import Callable

from redis.asyncio import Redis

from instance_registry.common.concurrency import gather_all
from instance_registry.common.schemas import (
    GroupRecord, GroupSummary, dump_ids, dump_record, load_group, load_ids,
)
from instance_registry.store.keys import group_index_key, group_key, group_list_key
import structlog

logger = structlog.get_logger()


class GroupIndex:
    def __init__(self, redis: Redis, clock: Callable[[], float] = time.time) -> None:
        self._redis = redis
        self._clock = clock

    # ─── 读取 ───

    async def list_group_ids(self) -> list[str]:
        return load_ids(await self._redis.get(group_list_key()))

    async def get_group(self, gid: str) -> GroupRecord | None:
        return load_group(await self._redis.get(group_key(gid)))

    async def summaries(self) -> list[GroupSummary]:
        """所有组及其实例数。记录或索引缺失的组跳过。"""
        gids = await self.list_group_ids()
        logger.debug("groups_listing", count=len(gids))
        results = await gather_all(*(self._summary(gid) for gid in gids))
        return [s for s in results if s is not None]

    async def _summary(self, gid: str) -> GroupSummary | None:
        group_raw, index_raw = await gather_all(
            self._redis.get(group_key(gid)),
            self._redis.get(group_index_key(gid)),
        )
        group = load_group(group_raw)
        if group is None or index_raw is None:
            return None
        return GroupSummary(**group.model_dump(), instances=len(load_ids(index_raw)))

    # ─── 写入 (需持有全局列表锁) ───

    async def add_group(
        self, gid: str, seed_id: str, carried: list[str] | None = None,
    ) -> GroupRecord:
        """
        新建组记录 + 以 seed_id 初始化实例索引 + 加入全局列表。

        carried 为组记录缺失时残留索引中的 id, 保留在新索引中 (排在 seed_id 之前),
        其中记录已不存在的 id 由 GC 清理。
        """
        now = self._clock()
        group = GroupRecord(group=gid, created_at=now, last_updated_at=now)
        ids = [i for i in carried or () if i != seed_id] + [seed_id]
        logger.info("group_added", group=gid, seed=seed_id, carried=len(ids) - 1)
        await gather_all(
            self._redis.set(group_key(gid), dump_record(group)),
            self._redis.set(group_index_key(gid), dump_ids(ids)),
            self.alter_global_list(add=[gid]),
        )
        return group

    async def remove_group(self, gid: str) -> None:
        await self.remove_groups([gid])

    async def remove_groups(self, gids: list[str]) -> None:
        """删除组记录与索引, 并以一次列表修改把它们移出全局列表。"""
        if not gids:
            return
        logger.info("groups_removed", groups=gids)
        await gather_all(
            *(self._redis.delete(group_key(gid)) for gid in gids),
            *(self._redis.delete(group_index_key(gid)) for gid in gids),
            self.alter_global_list(remove=gids),
        )

    async def alter_global_list(
        self, add: list[str] | None = None, remove: list[str] | None = None,
    ) -> list[str]:
        """
        读取全局列表, 先追加后移除, 整体写回。

        同时出现在 add 与 remove 中的 gid 最终被移除。列表不存在时视为空。
        """
        gids = await self.list_group_ids()
        for gid in add or ():
            if gid not in gids:
                gids.append(gid)
        if remove:
            gids = [gid for gid in gids if gid not in remove]
        await self._redis.set(group_list_key(), dump_ids(gids))
        return gids

    # ─── 写入 (需持有组锁) ───

    async def touch(self, group: GroupRecord, now: float) -> GroupRecord:
        """刷新组的 last_updated_at。"""
        touched = group.model_copy(update={"last_updated_at": now})
        await self._redis.set(group_key(group.group), dump_record(touched))
        return touched
