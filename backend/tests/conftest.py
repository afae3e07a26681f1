"""Shared test fixtures - async SQLite and fakeredis for isolated testing."""

from datetime import datetime, timedelta, timezone

import pytest
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from circles.db.database import Base
from circles.core.tier_store import TierCapacityStore
from circles.schemas.friend import Friend, Tier

# In-memory SQLite for tests (no Docker needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///file::memory:?cache=shared&uri=true"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


def make_friend(friend_id: str, tier: Tier = Tier.CORE, name: str | None = None, **fields) -> Friend:
    fields.setdefault("added_at", START)
    return Friend(id=friend_id, name=name or friend_id.title(), tier=tier, **fields)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    # Import all models so Base.metadata knows about them
    import circles.models  # noqa: F401

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db():
    """Direct async DB session for model-level tests."""
    async with test_session_factory() as session:
        yield session
        await session.commit()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(clock):
    return TierCapacityStore(clock=clock)


@pytest.fixture
async def fake_redis():
    redis = FakeRedis(decode_responses=True)
    yield redis
    await redis.flushall()
    await redis.aclose()


@pytest.fixture
async def service(fake_redis, clock):
    """CircleService wired to the test database and fake Redis."""
    from circles.services.circle_service import CircleService
    from circles.services.persistence_service import RosterRepository
    from circles.services.roster_cache import RosterCache

    svc = CircleService(
        RosterRepository(test_session_factory),
        RosterCache(fake_redis),
        clock=clock,
        debounce_seconds=0.01,
    )
    yield svc
    await svc.close()


@pytest.fixture
async def client(service, fake_redis):
    """Async HTTP test client with the test service injected."""
    import circles.db.redis as redis_module
    from circles.api.deps import get_circle_service
    from circles.main import app

    redis_module.redis_client = fake_redis
    app.dependency_overrides[get_circle_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    redis_module.redis_client = None
