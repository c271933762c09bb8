"""
注册中心 API 路由。

端点:
- GET    /groups              所有组及实例数
- GET    /groups/{gid}        组内实例 (组不存在 404)
- POST   /groups/{gid}/{iid}  新建实例或心跳, 回显请求体
- DELETE /groups/{gid}/{iid}  删除实例 (组不存在 404)
"""
from __future__ import annotations
from typing import Any

from fastapi import APIRouter, Body, Response

from instance_registry.common.dependencies import Registry
from instance_registry.common.exceptions import GroupNotFoundError
from instance_registry.common.schemas import GroupSummary, InstanceRecord


router = APIRouter(tags=["registry"])


@router.get("/groups", response_model=list[GroupSummary])
async def list_groups(registry: Registry):
    return await registry.list_groups()


@router.get("/groups/{gid}", response_model=list[InstanceRecord])
async def list_instances(gid: str, registry: Registry):
    instances = await registry.list_instances(gid)
    if instances is None:
        raise GroupNotFoundError(f"Group {gid} not found")
    return instances


@router.post("/groups/{gid}/{iid}")
async def upsert_instance(
    gid: str,
    iid: str,
    registry: Registry,
    payload: dict[str, Any] | None = Body(default=None),
):
    payload = payload or {}
    await registry.upsert(gid, iid, payload)
    return payload


@router.delete("/groups/{gid}/{iid}", status_code=204)
async def remove_instance(gid: str, iid: str, registry: Registry):
    if not await registry.remove(gid, iid):
        raise GroupNotFoundError(f"Group {gid} not found")
    return Response(status_code=204)
