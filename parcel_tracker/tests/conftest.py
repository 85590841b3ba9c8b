"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from parcel_tracker.app.main import app
from parcel_tracker.app.db.session import get_db, Base
from parcel_tracker.app.core.dependencies import get_polling_engine
from parcel_tracker.app.domain.tracking.polling_engine import PollingEngine
from parcel_tracker.app.services.cache import TrackingCache
from parcel_tracker.app.services.status_provider import MockStatusProvider
from parcel_tracker.app.services.tracking_store import TrackingStore
from parcel_tracker.tests.support import STEP_SECONDS, FakeClock, MockRedis, RecordingNotifier

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def db_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory):
    return TrackingStore(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return MockStatusProvider(step_seconds=STEP_SECONDS)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def redis_client():
    return MockRedis()


@pytest.fixture
def cache(redis_client):
    return TrackingCache(redis_client, ttl_seconds=300)


@pytest.fixture
async def make_engine(store, notifier, cache, clock):
    """Factory for polling engines sharing the test store, clock and sinks."""
    engines = []

    def _make(provider_obj, **kwargs):
        options = {
            "notifier": notifier,
            "cache": cache,
            "check_interval_seconds": 900,
            "provider_timeout_seconds": 1,
            "clock": clock,
        }
        options.update(kwargs)
        engine = PollingEngine(store=store, provider=provider_obj, **options)
        engines.append(engine)
        return engine

    yield _make

    # Cancel polling tasks before the event loop closes
    for engine in engines:
        await engine.shutdown()


@pytest.fixture
async def polling_engine(make_engine, provider):
    engine = make_engine(provider)
    yield engine
    await engine.shutdown()


@pytest.fixture
async def client(polling_engine, session_factory):
    """Async client for testing."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_polling_engine():
        return polling_engine

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_polling_engine] = override_get_polling_engine

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}
