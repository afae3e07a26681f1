"""Tests for durable snapshots, the Redis cache, debounced writes and the service."""

import asyncio

import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from sqlalchemy import select

from circles.core.errors import PersistenceError
from circles.core.workspace import WorkspaceState
from circles.models.roster import RosterSnapshot
from circles.schemas.friend import FriendCreate, Tier
from circles.services.defaults_service import defaults_service
from circles.services.persistence_service import DebouncedWriter, RosterRepository
from circles.services.roster_cache import RosterCache

from conftest import make_friend, test_session_factory


def _state(user_id: str = "user-1", friends: int = 1) -> WorkspaceState:
    state = WorkspaceState(user_id=user_id, settings=defaults_service.bundle())
    state.roster.friends = [make_friend(f"f{i}") for i in range(friends)]
    return state


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


async def test_save_and_load_snapshot():
    repo = RosterRepository(test_session_factory)

    assert await repo.load("user-1") is None
    assert await repo.save(_state(friends=2)) == 1
    assert await repo.save(_state(friends=3)) == 2

    loaded = await repo.load("user-1")
    assert [f.id for f in loaded.roster.friends] == ["f0", "f1", "f2"]
    assert loaded.settings == defaults_service.bundle()


async def test_snapshot_row(db):
    await RosterRepository(test_session_factory).save(_state())

    row = (await db.execute(select(RosterSnapshot))).scalar_one()

    assert row.user_id == "user-1"
    assert row.revision == 1
    assert row.payload["roster"]["friends"][0]["id"] == "f0"
    assert row.updated_at is not None


async def test_delete_snapshot():
    repo = RosterRepository(test_session_factory)
    await repo.save(_state())
    await repo.delete("user-1")
    await repo.delete("never-saved")
    assert await repo.load("user-1") is None


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


async def test_cache_round_trip(fake_redis):
    cache = RosterCache(fake_redis, ttl=60)
    await cache.save(_state())

    assert await fake_redis.ttl("circles:roster:user-1") > 0
    cached = await cache.get("user-1")
    assert cached.roster.friends[0].id == "f0"

    await cache.clear("user-1")
    assert await cache.get("user-1") is None


async def test_unreadable_cache_entry_is_dropped(fake_redis):
    await fake_redis.set("circles:roster:user-1", "{broken")
    assert await RosterCache(fake_redis).get("user-1") is None
    assert await fake_redis.get("circles:roster:user-1") is None


async def test_unavailable_redis_raises_persistence_error():
    server = FakeServer()
    server.connected = False
    cache = RosterCache(FakeRedis(server=server, decode_responses=True))

    with pytest.raises(PersistenceError):
        await cache.get("user-1")


# ---------------------------------------------------------------------------
# Debounced writer
# ---------------------------------------------------------------------------


async def test_burst_of_changes_is_one_write():
    written = []

    async def write(state):
        written.append(len(state.roster.friends))

    writer = DebouncedWriter(write, delay=0.01)
    for n in range(1, 6):
        writer.schedule("user-1", lambda n=n: _state(friends=n))
    assert writer.is_pending("user-1")

    await asyncio.sleep(0.1)

    assert written == [5]
    assert not writer.is_pending("user-1")


async def test_flush_writes_immediately():
    written = []

    async def write(state):
        written.append(state.user_id)

    writer = DebouncedWriter(write, delay=60)
    writer.schedule("a", lambda: _state("a"))
    writer.schedule("b", lambda: _state("b"))

    await writer.flush("a")
    assert written == ["a"]
    await writer.close()
    assert written == ["a", "b"]


async def test_flush_propagates_persistence_error():
    async def write(state):
        raise PersistenceError("disk on fire")

    writer = DebouncedWriter(write, delay=60)
    writer.schedule("a", lambda: _state("a"))

    with pytest.raises(PersistenceError):
        await writer.flush()


# ---------------------------------------------------------------------------
# CircleService
# ---------------------------------------------------------------------------


async def test_new_user_gets_default_settings(service):
    ws = await service.get_workspace("new-user")

    assert ws.store.all_friends() == []
    assert ws.settings == defaults_service.bundle()
    assert await service.get_workspace("new-user") is ws


async def test_mutations_reach_cache_and_database(service, fake_redis):
    ws = await service.get_workspace("user-1")
    ws.store.add_friend(FriendCreate(name="Ada", tier=Tier.CORE))
    ws.store.add_friend(FriendCreate(name="Grace", tier=Tier.INNER))

    await service.commit("user-1")

    stored = await service.repository.load("user-1")
    assert sorted(f.name for f in stored.roster.friends) == ["Ada", "Grace"]
    assert await fake_redis.exists("circles:roster:user-1")


async def test_workspace_reloads_from_database_after_restart(service, fake_redis, clock):
    from circles.services.circle_service import CircleService

    ws = await service.get_workspace("user-1")
    ws.store.add_friend(FriendCreate(name="Ada", tier=Tier.CORE))
    ws.store.add_reserved_group(Tier.CORE, 2, "family")
    await service.commit("user-1")
    await fake_redis.flushall()

    fresh = CircleService(service.repository, RosterCache(fake_redis), clock=clock, debounce_seconds=0.01)
    reloaded = await fresh.get_workspace("user-1")

    assert [f.name for f in reloaded.store.all_friends()] == ["Ada"]
    assert reloaded.store.get_tier_capacity(Tier.CORE).available == 2
    await fresh.close()


async def test_clear_all_data(service, fake_redis):
    ws = await service.get_workspace("user-1")
    ws.store.add_friend(FriendCreate(name="Ada", tier=Tier.CORE))
    await service.commit("user-1")

    await service.clear_all_data("user-1")

    assert ws.store.all_friends() == []
    assert await service.repository.load("user-1") is None
    assert not await fake_redis.exists("circles:roster:user-1")
    assert not service.writer.is_pending("user-1")
