"""
Shared fixtures for the trust engine test suite.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from core.clock import MockClock
from storage.database import create_engine, create_session_factory, create_tables
from storage.stores import InMemoryStore, SqlAlchemyStore
from trust_engine.engine import TrustDecisionEngine
from trust_engine.executors import LoggingActionExecutor


NOON_UTC = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    """Mock clock pinned to 2024-01-01 12:00 UTC."""
    return MockClock(NOON_UTC)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def executor(clock):
    """Dry-run executor that records every call."""
    return LoggingActionExecutor(clock)


@pytest.fixture
def engine(store, executor, clock):
    return TrustDecisionEngine(store=store, executor=executor, clock=clock)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def any_store(request):
    """Each store adapter in turn; SQLite runs on a fresh in-memory database."""
    if request.param == "memory":
        yield InMemoryStore()
        return

    db_engine = create_engine(url="sqlite+aiosqlite:///:memory:")
    await create_tables(db_engine)
    try:
        yield SqlAlchemyStore(create_session_factory(db_engine))
    finally:
        await db_engine.dispose()
