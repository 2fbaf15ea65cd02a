"""Service test fixtures — async DB, queue fakes, cache and FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db, get_task_queue and get_cache dependencies overridden for route tests
    - db_manager patched so code using it directly hits the test DB

Design Decisions:
    - StaticPool: one shared connection, so every session sees the same :memory: DB
    - Service tests drive TaskService with test_db; tests.fakes.reload() re-reads rows
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.pool import StaticPool
from httpx import ASGITransport, AsyncClient

from taskhub.db.base import Base
from taskhub.infrastructure.cache import TTLCache, get_cache
from taskhub.infrastructure.database import get_db, DatabaseSessionManager
from taskhub.infrastructure.task_queue import get_task_queue
from taskhub.models import Task, User
from taskhub.services.outbox_dispatcher import OutboxDispatcher
from taskhub.services.task_service import TaskService
import taskhub.infrastructure.database as db_module
from taskhub.main import app

from tests.fakes import FakeClock, RecordingQueue


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def queue():
    return RecordingQueue()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(namespace="test", clock=clock)


@pytest.fixture
def service(test_db, queue, cache):
    return TaskService(
        test_db, queue, cache=cache,
        dispatcher=OutboxDispatcher(queue, grace_seconds=0),
    )


@pytest.fixture
async def owner(test_db):
    user = User(email="ada@example.com", name="Ada")
    test_db.add(user)
    await test_db.commit()
    return user


@pytest.fixture
async def other_owner(test_db):
    user = User(email="grace@example.com", name="Grace")
    test_db.add(user)
    await test_db.commit()
    return user


@pytest.fixture
def make_task(test_db, owner):
    """Insert a task directly, bypassing TaskService (no outbox event)."""
    async def _make(title="Task", **fields):
        fields.setdefault("user_id", owner.id)
        fields.setdefault("created_at", datetime(2026, 3, 1, 12, tzinfo=timezone.utc))
        task = Task(title=title, **fields)
        test_db.add(task)
        await test_db.commit()
        return task
    return _make


@pytest.fixture
async def client(test_engine, test_session_factory, queue, cache):
    """FastAPI test client with DB, queue and cache dependencies overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_task_queue] = lambda: queue
    app.dependency_overrides[get_cache] = lambda: cache

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
