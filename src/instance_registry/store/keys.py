"""
键空间。所有实体位于同一扁平命名空间:

    groups                      全局组列表 (gid 数组)
    group:{gid}                 组记录
    group:{gid}:instances       组内实例索引 (id 数组)
    instance:{gid}:{id}         实例记录
    mutex:{name}                互斥锁 (获取时间戳)
    last_gc                     最近一次 GC 时间戳
"""
from __future__ import annotations

GROUP_LIST_KEY = "groups"
LAST_GC_KEY = "last_gc"
MUTEX_PREFIX = "mutex:"


def group_key(gid: str) -> str:
    return f"group:{gid}"


def group_index_key(gid: str) -> str:
    return f"group:{gid}:instances"


def group_list_key() -> str:
    return GROUP_LIST_KEY


def instance_key(gid: str, iid: str) -> str:
    return f"instance:{gid}:{iid}"


def mutex_key(name: str) -> str:
    """锁以其保护的资源键命名。"""
    return MUTEX_PREFIX + name


# 两类锁: 全局组列表锁, 以及以组索引键命名的组锁
def list_lock_name() -> str:
    return GROUP_LIST_KEY


def group_lock_name(gid: str) -> str:
    return group_index_key(gid)
