"""存储记录与响应 DTO。存储格式为 orjson 编码的 JSON。"""
from __future__ import annotations
from typing import Any
import orjson
from pydantic import BaseModel, Field


class GroupRecord(BaseModel):
    group: str
    created_at: float
    last_updated_at: float

class GroupSummary(GroupRecord):
    instances: int = 0

class InstanceRecord(BaseModel):
    id: str
    group: str
    created_at: float
    updated_at: float
    meta: dict[str, Any] = Field(default_factory=dict)


def dump_record(record: BaseModel) -> bytes:
    return orjson.dumps(record.model_dump())


def dump_ids(ids: list[str]) -> bytes:
    return orjson.dumps(ids)


def load_ids(raw: str | bytes | None) -> list[str]:
    """索引 (id 列表) 解码。不存在视为空列表。"""
    if not raw:
        return []
    return list(orjson.loads(raw))


def load_group(raw: str | bytes | None) -> GroupRecord | None:
    if not raw:
        return None
    return GroupRecord.model_validate(orjson.loads(raw))


def load_instance(raw: str | bytes | None) -> InstanceRecord | None:
    if not raw:
        return None
    return InstanceRecord.model_validate(orjson.loads(raw))
