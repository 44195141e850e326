import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./unused.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENABLE_BACKGROUND_TASKS", "false")

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.api.v1.attendance.consumers import register_consumers
from coaching.core.clock import get_clock
from coaching.core.events import EventBus, get_event_bus
from coaching.db.session import Base, get_db, make_engine, make_session_factory
from coaching.main import app

from tests.factories import FIXED_NOW, FixedClock, RecordingPublisher


@pytest.fixture()
async def engine(tmp_path):
    """Fresh file-backed SQLite database per test."""
    eng = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(FIXED_NOW)


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
async def bus(session_factory, publisher) -> AsyncGenerator[EventBus, None]:
    """Running bus with the production consumers bound to the test database."""
    event_bus = EventBus()
    register_consumers(event_bus, session_factory, publisher)
    await event_bus.start()
    yield event_bus
    await event_bus.stop()


@pytest.fixture()
async def client(db_session, clock, bus) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_event_bus] = lambda: bus
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
