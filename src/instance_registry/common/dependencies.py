"""FastAPI 依赖注入。lifespan 中 override 这些 sentinel 函数。"""
from __future__ import annotations
from typing import Annotated
from fastapi import Depends
from redis.asyncio import Redis

from instance_registry.registry.service import RegistryService


async def get_redis() -> Redis:
    """占位 — 由 main.py lifespan 通过 dependency_overrides 替换。"""
    raise RuntimeError("Redis not initialized. Check lifespan setup.")


async def get_registry() -> RegistryService:
    """占位 — 由 main.py lifespan 通过 dependency_overrides 替换。"""
    raise RuntimeError("Registry not initialized. Check lifespan setup.")


RedisClient = Annotated[Redis, Depends(get_redis)]
Registry = Annotated[RegistryService, Depends(get_registry)]
