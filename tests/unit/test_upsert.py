"""
Unit tests for the upsert engine
"""

import pytest
from datetime import date
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError
from core.exceptions import UpsertError
from models.entries import TimeTrackingEntry
from pipeline.upsert import UpsertEngine


async def _count(session):
    return (await session.execute(select(func.count()).select_from(TimeTrackingEntry))).scalar()


class TestUpsertEngine:
    """Test batched natural-key upserts"""

    @pytest.mark.asyncio
    async def test_inserts_rows_stamped_with_run(self, db_session, make_run, make_entry_row):
        run = make_run().seal()
        rows = [make_entry_row(f"e{i}") for i in range(3)]

        result = await UpsertEngine(db_session).upsert(rows, "time_tracking_entries", run)

        assert result.written == 3
        assert result.complete
        stored = (await db_session.execute(select(TimeTrackingEntry))).scalars().all()
        assert {r.natural_key for r in stored} == {"e0", "e1", "e2"}
        assert all(r.sync_run_id == run.run_id for r in stored)
        assert all(r.synced_at is not None for r in stored)

    @pytest.mark.asyncio
    async def test_repeated_upsert_is_idempotent(self, db_session, make_run, make_entry_row):
        first = make_run().seal()
        second = make_run().seal()
        engine = UpsertEngine(db_session)

        await engine.upsert([make_entry_row("e1", quantity=30), make_entry_row("e2")], "time_tracking_entries", first)
        await engine.upsert([make_entry_row("e1", quantity=45), make_entry_row("e2")], "time_tracking_entries", second)

        assert await _count(db_session) == 2
        row = await db_session.scalar(select(TimeTrackingEntry).where(TimeTrackingEntry.natural_key == "e1"))
        await db_session.refresh(row)
        assert row.quantity == 45
        assert row.sync_run_id == second.run_id

    @pytest.mark.asyncio
    async def test_duplicate_keys_last_wins(self, db_session, make_run, make_entry_row):
        run = make_run().seal()
        rows = [make_entry_row("e1", task_name="first"), make_entry_row("e1", task_name="second")]

        result = await UpsertEngine(db_session).upsert(rows, "time_tracking_entries", run)

        assert result.written == 1
        row = await db_session.scalar(select(TimeTrackingEntry))
        assert row.task_name == "second"

    @pytest.mark.asyncio
    async def test_empty_rows(self, db_session, make_run):
        result = await UpsertEngine(db_session).upsert([], "time_tracking_entries", make_run().seal())

        assert result.written == 0
        assert result.complete

    @pytest.mark.asyncio
    async def test_unknown_table(self, db_session, make_run, make_entry_row):
        with pytest.raises(UpsertError):
            await UpsertEngine(db_session).upsert([make_entry_row("e1")], "nope", make_run().seal())

    @pytest.mark.asyncio
    async def test_failed_batch_does_not_affect_others(self, db_session, make_run, make_entry_row, monkeypatch):
        run = make_run().seal()
        rows = [make_entry_row(f"e{i:04d}", work_date=date(2026, 3, 1 + i % 28)) for i in range(1200)]

        original_execute = db_session.execute
        calls = []

        async def flaky_execute(statement, *args, **kwargs):
            calls.append(statement)
            if len(calls) == 2:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return await original_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db_session, "execute", flaky_execute)

        result = await UpsertEngine(db_session, batch_size=400).upsert(rows, "time_tracking_entries", run)

        monkeypatch.undo()
        assert len(calls) == 3
        assert result.written == 800
        assert result.failed_rows == 400
        assert len(result.failed_batches) == 1

        failed = result.failed_batches[0]
        assert failed.index == 1
        assert failed.size == 400
        assert failed.natural_keys[0] == "e0400"
        assert failed.natural_keys[-1] == "e0799"
        assert "database is locked" in failed.error

        assert await _count(db_session) == 800
        stored = set((await db_session.execute(select(TimeTrackingEntry.natural_key))).scalars().all())
        assert "e0399" in stored
        assert "e0400" not in stored
        assert "e0800" in stored

    @pytest.mark.asyncio
    async def test_failed_batch_with_default_batch_size(self, db_session, make_run, make_entry_row, monkeypatch):
        run = make_run().seal()
        rows = [make_entry_row(f"e{i:04d}") for i in range(1200)]

        original_execute = db_session.execute
        calls = []

        async def flaky_execute(statement, *args, **kwargs):
            calls.append(statement)
            if len(calls) == 2:
                raise OperationalError("INSERT", {}, Exception("deadlock detected"))
            return await original_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db_session, "execute", flaky_execute)

        engine = UpsertEngine(db_session)
        result = await engine.upsert(rows, "time_tracking_entries", run)

        monkeypatch.undo()
        assert engine.batch_size == 500
        assert len(calls) == 3
        assert result.written == 700
        assert result.failed_rows == 500
        assert [(b.index, b.size) for b in result.failed_batches] == [(1, 500)]
        assert result.failed_batches[0].natural_keys[0] == "e0500"
        assert result.failed_batches[0].natural_keys[-1] == "e0999"
        assert await _count(db_session) == 700
