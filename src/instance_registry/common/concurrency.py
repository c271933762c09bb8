"""并发扇出/汇合。"""
from __future__ import annotations
import asyncio
from typing import Any, Awaitable


async def gather_all(*aws: Awaitable[Any]) -> list[Any]:
    """
    并发执行一组写操作, 等待全部结束后统一汇总失败。

    组内顺序无关, 但整组构成一个逻辑步骤: 不会因某个失败而取消其余操作。
    单个失败原样抛出; 多个失败以 ExceptionGroup 抛出。
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]
    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ExceptionGroup("concurrent writes failed", errors)
    return results
