"""
Tests for database helpers
"""

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool
from core.database import create_tables, database_label, ping


def test_database_label_hides_password():
    label = database_label("postgresql+asyncpg://sync_user:s3cret@db:5432/sync_db")

    assert "s3cret" not in label
    assert "sync_user" in label
    assert label.endswith("db:5432/sync_db")


@pytest.mark.asyncio
async def test_ping(db_session):
    assert await ping(db_session) is True


@pytest.mark.asyncio
async def test_create_tables_registers_sync_schema():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    try:
        tables = await create_tables(engine)
        async with engine.connect() as conn:
            existing = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    finally:
        await engine.dispose()

    assert {"sync_runs", "sync_leases", "tracker_entries", "hr_employees"} <= set(tables)
    assert set(tables) == set(existing)
