"""
Delete rows that a complete run proved no longer exist upstream
"""

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import ReconciliationError
from models.entries import SYNC_TABLES
from pipeline.run_context import SealedSyncRun
from schemas.sync import DeletionResult, IngestionWindow
import logging

logger = logging.getLogger(__name__)

# Tables whose fetch is not window-filtered
SCOPE_ONLY_TABLES = {"hr_employees"}


class Reconciler:
    """
    Remove stale rows under one scope after a run.

    A row is stale when it sits in the run's scope (and window, for dated
    tables) but was not written by the run. Deletion only happens when the
    run saw everything upstream had for exactly this scope and window.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def reconcile(
        self,
        scope_key: str,
        window: IngestionWindow,
        run: SealedSyncRun,
        table: str
    ) -> DeletionResult:
        model = SYNC_TABLES.get(table)
        if model is None:
            raise ReconciliationError(f"Unknown sync table: {table}", context={"table_name": table})

        if not run.fetch_complete:
            logger.warning(f"Skipping reconciliation of {table} for run {run.run_id}: fetch incomplete")
            return DeletionResult(table=table, skipped_reason="fetch_incomplete")

        if not run.covers(scope_key, window):
            logger.warning(
                f"Skipping reconciliation of {table} for run {run.run_id}: "
                f"scope {scope_key} / window {window.start_iso}..{window.end_iso} "
                f"does not match the run's {run.scope_key} / {run.window.start_iso}..{run.window.end_iso}"
            )
            return DeletionResult(table=table, skipped_reason="scope_mismatch")

        stmt = delete(model).where(
            model.scope_key == scope_key,
            # NULL run ids are legacy rows and count as stale
            model.sync_run_id.is_distinct_from(run.run_id),
        )
        if table not in SCOPE_ONLY_TABLES:
            stmt = stmt.where(model.work_date.between(window.start_date, window.end_date))

        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise ReconciliationError(
                f"Failed to reconcile {table}",
                context={"table_name": table, "scope_key": scope_key, "run_id": run.run_id},
                original_exception=e
            )

        deleted = result.rowcount or 0
        logger.info(f"Reconciled {table} scope={scope_key}: deleted {deleted} stale rows")
        return DeletionResult(table=table, executed=True, deleted_count=deleted)
