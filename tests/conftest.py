"""Shared test fixtures — in-memory database, SQL store, event bus."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from netpulse.models import Base
from netpulse.store.sql import SqlStore
from netpulse.utils.event_bus import EventBus

# 2026-03-03 is a Tuesday; 21:00 falls in hour-of-week 45.
TUESDAY_21 = datetime(2026, 3, 3, 21, 0, tzinfo=timezone.utc)


@pytest.fixture
def tuesday_21():
    return TUESDAY_21


@pytest_asyncio.fixture
async def db_engine():
    """Shared in-memory engine (StaticPool keeps one connection alive)."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def store(session_factory, event_bus):
    return SqlStore(session_factory, timeout=5.0, event_bus=event_bus)


@pytest.fixture
def collected_events(event_bus):
    """Subscribe to every event type; drain the bus to fill the list."""
    events: list[tuple[str, dict]] = []

    async def _collect(event_type, data):
        events.append((event_type, data))

    event_bus.subscribe("*", _collect)
    return events
