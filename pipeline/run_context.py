"""
Sync run tracking: run identity, fetch completeness and the error list.

A SyncRun is created at the start of a fetch cycle and threaded by reference
through the fetch and normalize stages. seal() turns it into an immutable
SealedSyncRun before the upsert and reconcile stages read it.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from pydantic import BaseModel, ConfigDict
import logging
import uuid

from core.exceptions import RunSealedError
from models.base import RunStatus, SourceType
from schemas.sync import (
    DeletionResult,
    IngestionWindow,
    SyncError,
    SyncRunSummary,
    UpsertResult,
)

logger = logging.getLogger(__name__)


class SealedSyncRun(BaseModel):
    """Read-only view of a finished fetch cycle"""
    model_config = ConfigDict(frozen=True)

    run_id: str
    started_at: datetime
    source: SourceType
    scope_key: str
    window: IngestionWindow
    fetch_complete: bool
    errors: Tuple[SyncError, ...] = ()

    def covers(self, scope_key: str, window: IngestionWindow) -> bool:
        """True when (scope_key, window) is exactly what this run fetched"""
        return self.scope_key == scope_key and self.window == window

    def summary(
        self,
        status: RunStatus,
        record_counts: Optional[Dict[str, int]] = None,
        upserts: Sequence[UpsertResult] = (),
        reconciliations: Sequence[DeletionResult] = (),
        stage_errors: Sequence[SyncError] = (),
        completed_at: Optional[datetime] = None,
    ) -> SyncRunSummary:
        """
        Build the outward summary for this run.

        stage_errors are failures raised after sealing (upsert, reconcile);
        they follow the fetch-stage errors in the summary's error list.
        """
        completed_at = completed_at or datetime.now(timezone.utc)
        errors: List[SyncError] = list(self.errors) + list(stage_errors)

        return SyncRunSummary(
            sync_run_id=self.run_id,
            sync_run_at=self.started_at,
            source=self.source,
            scope_key=self.scope_key,
            status=status,
            fetch_complete=self.fetch_complete,
            range_start=self.window.range_start,
            range_end=self.window.range_end,
            record_counts=dict(record_counts or {}),
            error_count=len(errors),
            errors=errors,
            upserts=list(upserts),
            reconciliations=list(reconciliations),
            completed_at=completed_at,
            duration_seconds=round((completed_at - self.started_at).total_seconds(), 3),
        )


class SyncRun:
    """
    Mutable accumulator for one pipeline execution.

    fetch_complete starts True and only ever flips to False, when a critical
    error is recorded.
    """

    def __init__(
        self,
        source: SourceType,
        scope_key: str,
        window: IngestionWindow,
        run_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ):
        self.run_id = run_id or str(uuid.uuid4())
        self.started_at = started_at or datetime.now(timezone.utc)
        self.source = source
        self.scope_key = scope_key
        self.window = window
        self.fetch_complete = True
        self.errors = []
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def _check_open(self, operation: str):
        if self._sealed:
            raise RunSealedError(
                f"Cannot {operation} a sealed sync run",
                context={"run_id": self.run_id, "source": self.source.value}
            )

    def record_error(
        self,
        type: str,
        context: Optional[Dict[str, Any]] = None,
        message: str = "",
        critical: bool = False,
    ) -> SyncError:
        """Append an error; a critical one forces fetch_complete to False"""
        self._check_open("record an error on")

        error = SyncError(type=type, context=context or {}, message=message, critical=critical)
        self.errors.append(error)

        if critical:
            self.fetch_complete = False
            logger.error(
                f"[{self.source.value}:{self.run_id}] {type}: {message}",
                extra={"error_context": error.model_dump()}
            )
        else:
            logger.warning(
                f"[{self.source.value}:{self.run_id}] {type}: {message}",
                extra={"error_context": error.model_dump()}
            )
        return error

    def seal(self) -> SealedSyncRun:
        """Freeze the run; any further mutation raises RunSealedError"""
        self._check_open("seal")
        self._sealed = True
        return self.snapshot()

    def snapshot(self) -> SealedSyncRun:
        """Read-only copy of the current state; does not seal"""
        return SealedSyncRun(
            run_id=self.run_id,
            started_at=self.started_at,
            source=self.source,
            scope_key=self.scope_key,
            window=self.window,
            fetch_complete=self.fetch_complete,
            errors=tuple(self.errors),
        )


def new_run(source: SourceType, scope_key: str, window: IngestionWindow) -> SyncRun:
    """Issue a fresh run id and timestamp for one source/scope/window"""
    run = SyncRun(source=source, scope_key=scope_key, window=window)
    logger.info(
        f"Starting sync run {run.run_id} for {source.value} scope={scope_key} "
        f"window={window.start_iso}..{window.end_iso}"
    )
    return run


def record_error(
    run: SyncRun,
    type: str,
    context: Optional[Dict[str, Any]] = None,
    message: str = "",
    critical: bool = False,
) -> SyncError:
    return run.record_error(type, context=context, message=message, critical=critical)


def seal(run: SyncRun) -> SealedSyncRun:
    return run.seal()


class SyncRunTracker:
    """Namespace over the run lifecycle functions, for callers that inject it"""

    new_run = staticmethod(new_run)
    record_error = staticmethod(record_error)
    seal = staticmethod(seal)
