"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
import httpx
from datetime import date, datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator, Callable
from models import Base
from models.base import SourceType
from pipeline.http import APIClient
from pipeline.run_context import SyncRun
from pipeline.window import resolve_window
from schemas.normalized import TimeTrackingEntryRow

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

# 2026-02-01T00:00:00.000Z .. 2026-03-31T23:59:59.999Z
REFERENCE_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def window():
    return resolve_window(REFERENCE_NOW)


@pytest.fixture
def make_run(window) -> Callable[..., SyncRun]:
    """Open runs over the reference window"""
    def _make(source: SourceType = SourceType.TIME_TRACKING, scope_key: str = "ws_1", **kwargs) -> SyncRun:
        return SyncRun(source=source, scope_key=scope_key, window=kwargs.pop("window", window), **kwargs)
    return _make


@pytest.fixture
def make_entry_row() -> Callable[..., TimeTrackingEntryRow]:
    def _make(natural_key: str, work_date: date = date(2026, 3, 2), scope_key: str = "ws_1", **kwargs):
        values = {
            "natural_key": natural_key,
            "scope_key": scope_key,
            "work_date": work_date,
            "subject_id": "u1",
            "subject_name": "Ada Lovelace",
            "container_name": "Apollo",
            "quantity": 60,
        }
        values.update(kwargs)
        return TimeTrackingEntryRow(**values)
    return _make


@pytest_asyncio.fixture
async def http_client_factory():
    """
    Build APIClients over httpx.MockTransport.

    Usage:
        api = http_client_factory(handler, source_name="tracker")
    """
    clients = []

    def _make(handler, source_name: str = "test", max_retries: int = 0, **kwargs) -> APIClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return APIClient(client, source_name, max_retries=max_retries, retry_delay=0, **kwargs)

    yield _make

    for client in clients:
        await client.aclose()
