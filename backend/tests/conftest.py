"""
Pytest configuration and fixtures for backend tests.

Provides a throwaway SQLite database per test, a frozen clock, the
work session repository, a lifecycle controller and an async HTTP client.
"""
import uuid
import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from timeclock.main import app
from timeclock.core.clock import FrozenClock
from timeclock.core.database import Base
from timeclock.core.identity import StaticIdentity
from timeclock.models import WorkSession, WorkPause, SessionStatus
from timeclock.repositories.work_session_repository import WorkSessionRepository
from timeclock.services.session_lifecycle import SessionLifecycleController
from timeclock.api.v1.deps import SessionControllerRegistry, get_registry


# Monday 2026-03-02 09:00 UTC
START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
TICK_INTERVAL = 0.01


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine backed by a temporary SQLite file."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'timeclock.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for tests."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def repository(session_maker) -> WorkSessionRepository:
    return WorkSessionRepository(session_maker, max_session_duration=timedelta(hours=16))


@pytest.fixture
def long_repository(session_maker) -> WorkSessionRepository:
    """Repository whose maximum duration leaves room to recover day-old sessions."""
    return WorkSessionRepository(session_maker, max_session_duration=timedelta(hours=48))


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest_asyncio.fixture(scope="function")
async def controller(repository, clock, user_id) -> AsyncGenerator[SessionLifecycleController, None]:
    """Lifecycle controller for `user_id`, torn down after the test."""
    controller = SessionLifecycleController(
        repository,
        StaticIdentity(user_id),
        clock=clock,
        abandoned_threshold=timedelta(hours=24),
        tick_interval=TICK_INTERVAL,
    )
    yield controller
    await controller.close()


@pytest.fixture
def make_session(session_maker, user_id):
    """Insert a session (and optional pauses) directly, bypassing the lifecycle."""

    async def _make(
        start_time: datetime,
        status: SessionStatus = SessionStatus.ACTIVE,
        pauses: list[tuple[datetime, datetime | None]] = (),
        owner: uuid.UUID | None = None,
        **fields,
    ) -> WorkSession:
        async with session_maker() as db:
            session = WorkSession(
                user_id=owner or user_id,
                start_time=start_time,
                status=status,
                **fields,
            )
            db.add(session)
            await db.flush()
            for pause_start, pause_end in pauses:
                db.add(WorkPause(session_id=session.id, pause_start=pause_start, pause_end=pause_end))
            await db.commit()
            return session

    return _make


@pytest_asyncio.fixture(scope="function")
async def registry(repository, clock) -> AsyncGenerator[SessionControllerRegistry, None]:
    registry = SessionControllerRegistry(repository, clock=clock, tick_interval=TICK_INTERVAL)
    yield registry
    await registry.close_all()


@pytest.fixture
def auth_headers(user_id) -> dict:
    return {"X-User-Id": str(user_id)}


@pytest_asyncio.fixture(scope="function")
async def async_client(registry) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with the controller registry overridden."""
    app.dependency_overrides[get_registry] = lambda: registry

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
