"""
Sync Runner - Orchestrates fetch, normalize, upsert and reconcile per source.

This module provides the per-source pipeline with:
- One lease per (source, scope) so concurrent runs never interleave writes
- Fetch failures captured on the run instead of raised
- Per-table upsert results with failed batch attribution
- Reconciliation only when both fetch and upsert were complete
- A persisted summary for every invocation, including total failures
"""

from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import async_sessionmaker
import logging

from core.exceptions import LeaseHeldError, ReconciliationError
from models.base import RunStatus, SourceType
from models.sync_run import SyncRunRecord
from pipeline.base import SourceFetcher
from pipeline.lease import LeaseManager
from pipeline.normalizer import DataNormalizer
from pipeline.reconciler import Reconciler
from pipeline.run_context import SealedSyncRun, SyncRun, new_run
from pipeline.upsert import UpsertEngine
from pipeline.window import resolve_window
from schemas.normalized import NormalizedRow
from schemas.sync import DeletionResult, SyncError, SyncRunSummary, UpsertResult

logger = logging.getLogger(__name__)


class SyncRunner:
    """
    Run one source end to end and report the outcome.

    run() never raises: lease conflicts, fatal fetch errors and store
    failures all come back as a SyncRunSummary with the matching status.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        batch_size: int = 500,
        lease_ttl_seconds: int = 1800,
        lease_manager: Optional[LeaseManager] = None
    ):
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.lease_ttl_seconds = lease_ttl_seconds
        self.leases = lease_manager or LeaseManager(session_factory)

    async def run(self, fetcher: SourceFetcher, now: Optional[datetime] = None) -> SyncRunSummary:
        """
        Execute the full pipeline for one fetcher.

        Args:
            fetcher: Configured source fetcher; its scope_key scopes the lease
            now: Reference time for the ingestion window (defaults to UTC now)

        Returns:
            SyncRunSummary, also persisted to sync_runs
        """
        window = resolve_window(now)
        run = new_run(fetcher.source_type, fetcher.scope_key, window)

        try:
            async with self.leases.hold(
                fetcher.source_name,
                fetcher.scope_key,
                holder=run.run_id,
                ttl_seconds=self.lease_ttl_seconds
            ):
                summary = await self._execute(fetcher, run)

        except LeaseHeldError as e:
            run.record_error("lease_held", context=e.context, message=e.message, critical=True)
            summary = run.seal().summary(RunStatus.SKIPPED)

        except Exception as e:
            message = str(e) or type(e).__name__
            if run.sealed:
                summary = run.snapshot().summary(RunStatus.FAILED, stage_errors=[
                    SyncError(type="unexpected_error", context={"stage": "load"}, message=message, critical=True)
                ])
            else:
                # Lease acquisition failed before any stage ran
                run.record_error("lease_error", context={"stage": "lease"}, message=message, critical=True)
                summary = run.seal().summary(RunStatus.FAILED)

        await self._persist(summary)

        logger.info(
            f"Sync run {summary.sync_run_id} ({summary.source}) finished with status "
            f"{summary.status}: {summary.error_count} errors in {summary.duration_seconds}s"
        )
        return summary

    async def _execute(self, fetcher: SourceFetcher, run: SyncRun) -> SyncRunSummary:
        stage = "fetch"
        record_counts: Dict[str, int] = {}
        try:
            # --------------------------------------------------
            # PHASE 1: FETCH
            # --------------------------------------------------
            result = await fetcher.fetch(run.window, run)
            record_counts = result.count_by_kind()

            if result.aborted:
                logger.error(f"{fetcher.source_name}: entry point failed, skipping normalize/upsert/reconcile")
                return run.seal().summary(RunStatus.FAILED, record_counts=record_counts)

            # --------------------------------------------------
            # PHASE 2: NORMALIZE
            # --------------------------------------------------
            stage = "normalize"
            rows = DataNormalizer(fetcher.scope_key).normalize(result.records, result.lookups)
            record_counts["normalized"] = len(rows)

        except Exception as e:
            logger.exception(f"{fetcher.source_name}: unexpected error during {stage}")
            run.record_error(
                "unexpected_error",
                context={"stage": stage},
                message=str(e) or type(e).__name__,
                critical=True
            )
            return run.seal().summary(RunStatus.FAILED, record_counts=record_counts)

        sealed = run.seal()

        # --------------------------------------------------
        # PHASE 3: UPSERT + RECONCILE
        # --------------------------------------------------
        upserts, reconciliations, stage_errors = await self._load(fetcher, sealed, rows)

        status = self._status(sealed, upserts, stage_errors)
        return sealed.summary(
            status,
            record_counts=record_counts,
            upserts=upserts,
            reconciliations=reconciliations,
            stage_errors=stage_errors
        )

    async def _load(self, fetcher: SourceFetcher, run: SealedSyncRun, rows: List[NormalizedRow]):
        by_table: Dict[str, List[NormalizedRow]] = defaultdict(list)
        for row in rows:
            by_table[row.table_name].append(row)

        upserts: List[UpsertResult] = []
        reconciliations: List[DeletionResult] = []
        stage_errors: List[SyncError] = []

        for table in fetcher.tables:
            try:
                async with self.session_factory() as session:
                    upsert = await UpsertEngine(session, batch_size=self.batch_size).upsert(
                        by_table.get(table, []), table, run
                    )
                    upserts.append(upsert)

                    for batch in upsert.failed_batches:
                        stage_errors.append(SyncError(
                            type="upsert_batch_failed",
                            context={
                                "stage": "upsert",
                                "table_name": table,
                                "batch_index": batch.index,
                                "batch_size": batch.size
                            },
                            message=batch.error,
                            critical=True
                        ))

                    # Failed batches keep an older run id and would look stale
                    if not upsert.complete:
                        logger.warning(f"Skipping reconciliation of {table}: {upsert.failed_rows} rows not written")
                        reconciliations.append(DeletionResult(table=table, skipped_reason="upsert_incomplete"))
                        continue

                    try:
                        deletion = await Reconciler(session).reconcile(run.scope_key, run.window, run, table)
                    except ReconciliationError as e:
                        stage_errors.append(SyncError(
                            type="reconcile_error",
                            context={"stage": "reconcile", "table_name": table},
                            message=str(e),
                            critical=True
                        ))
                        deletion = DeletionResult(table=table, skipped_reason="reconcile_error")
                    reconciliations.append(deletion)

            except Exception as e:
                logger.error(f"Store failure while loading {table}: {e}")
                stage_errors.append(SyncError(
                    type="store_error",
                    context={"stage": "upsert", "table_name": table},
                    message=str(e) or type(e).__name__,
                    critical=True
                ))
                if not any(u.table == table for u in upserts):
                    upserts.append(UpsertResult(table=table))
                if not any(r.table == table for r in reconciliations):
                    reconciliations.append(DeletionResult(table=table, skipped_reason="upsert_incomplete"))

        return upserts, reconciliations, stage_errors

    @staticmethod
    def _status(run: SealedSyncRun, upserts: List[UpsertResult], stage_errors: List[SyncError]) -> RunStatus:
        if run.fetch_complete and not stage_errors:
            return RunStatus.SUCCESS
        if any(u.written for u in upserts):
            return RunStatus.PARTIAL
        return RunStatus.FAILED

    async def _persist(self, summary: SyncRunSummary):
        """Store the summary; a store failure is logged, never raised"""
        data = summary.model_dump(mode="json")
        try:
            async with self.session_factory() as session:
                session.add(SyncRunRecord(
                    run_id=summary.sync_run_id,
                    source=SourceType(summary.source),
                    scope_key=summary.scope_key,
                    status=RunStatus(summary.status),
                    fetch_complete=summary.fetch_complete,
                    range_start=summary.range_start,
                    range_end=summary.range_end,
                    started_at=summary.sync_run_at,
                    completed_at=summary.completed_at,
                    duration_seconds=summary.duration_seconds,
                    record_counts=data["record_counts"],
                    error_count=summary.error_count,
                    errors=data["errors"],
                    upserts=data["upserts"],
                    reconciliations=data["reconciliations"],
                ))
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to persist summary for run {summary.sync_run_id}: {e}")
