"""GroupIndex 测试。"""
import orjson
import pytest

from instance_registry.registry.groups import GroupIndex


@pytest.fixture
def groups(memory_redis, clock):
    return GroupIndex(memory_redis, clock=clock)


def _list(redis):
    return orjson.loads(redis.data["groups"])


@pytest.mark.asyncio
async def test_list_missing_is_empty(groups):
    assert await groups.list_group_ids() == []


@pytest.mark.asyncio
async def test_alter_creates_missing_list(groups, memory_redis):
    assert await groups.alter_global_list(add=["g1"]) == ["g1"]
    assert _list(memory_redis) == ["g1"]


@pytest.mark.asyncio
async def test_alter_remove_on_missing_list_writes_empty(groups, memory_redis):
    assert await groups.alter_global_list(remove=["g1"]) == []
    assert _list(memory_redis) == []


@pytest.mark.asyncio
async def test_alter_add_then_remove_removal_wins(groups, memory_redis):
    await groups.alter_global_list(add=["g1"])
    result = await groups.alter_global_list(add=["g2", "g3"], remove=["g2"])
    assert result == ["g1", "g3"]


@pytest.mark.asyncio
async def test_alter_never_duplicates(groups, memory_redis):
    await groups.alter_global_list(add=["g1", "g2"])
    await groups.alter_global_list(add=["g2", "g1"])
    assert _list(memory_redis) == ["g1", "g2"]


@pytest.mark.asyncio
async def test_add_group_writes_record_index_and_list(groups, memory_redis, clock):
    group = await groups.add_group("g1", "a")
    assert group.created_at == group.last_updated_at == clock.now
    assert orjson.loads(memory_redis.data["group:g1"])["group"] == "g1"
    assert orjson.loads(memory_redis.data["group:g1:instances"]) == ["a"]
    assert _list(memory_redis) == ["g1"]


@pytest.mark.asyncio
async def test_remove_group(groups, memory_redis):
    await groups.add_group("g1", "a")
    await groups.add_group("g2", "b")
    await groups.remove_group("g1")
    assert "group:g1" not in memory_redis.data
    assert "group:g1:instances" not in memory_redis.data
    assert _list(memory_redis) == ["g2"]


@pytest.mark.asyncio
async def test_remove_groups_single_list_write(groups, memory_redis):
    for gid in ("g1", "g2", "g3"):
        await groups.add_group(gid, "x")
    memory_redis.set.reset_mock()

    await groups.remove_groups(["g1", "g3"])

    list_writes = [c for c in memory_redis.set.call_args_list if c.args[0] == "groups"]
    assert len(list_writes) == 1
    assert _list(memory_redis) == ["g2"]


@pytest.mark.asyncio
async def test_remove_missing_group_is_noop(groups, memory_redis):
    await groups.remove_group("nope")
    assert _list(memory_redis) == []


@pytest.mark.asyncio
async def test_touch_updates_last_updated(groups, clock):
    group = await groups.add_group("g1", "a")
    clock.advance(5)
    await groups.touch(group, clock.now)
    stored = await groups.get_group("g1")
    assert stored.last_updated_at == clock.now
    assert stored.created_at == group.created_at


@pytest.mark.asyncio
async def test_summaries_count_and_skip_incomplete(groups, memory_redis):
    await groups.add_group("g1", "a")
    await groups.add_group("g2", "b")
    memory_redis.data["group:g1:instances"] = '["a","c"]'
    del memory_redis.data["group:g2:instances"]

    summaries = await groups.summaries()

    assert [(s.group, s.instances) for s in summaries] == [("g1", 2)]
