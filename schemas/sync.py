"""
Pydantic schemas for run state, stage results and the run summary
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, date
from models.base import SourceType, RunStatus


def to_iso_millis(value: datetime) -> str:
    """Render a UTC datetime as 2026-03-31T23:59:59.999Z"""
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class IngestionWindow(BaseModel):
    """
    Time filter shared by every fetch of one cycle.

    The same instant pair is rendered in whichever format each upstream API
    expects: epoch milliseconds, ISO-8601 strings or calendar dates.
    """
    model_config = ConfigDict(frozen=True)

    range_start: datetime
    range_end: datetime

    @property
    def start_ms(self) -> int:
        return int(self.range_start.timestamp() * 1000)

    @property
    def end_ms(self) -> int:
        return int(self.range_end.timestamp() * 1000)

    @property
    def start_iso(self) -> str:
        return to_iso_millis(self.range_start)

    @property
    def end_iso(self) -> str:
        return to_iso_millis(self.range_end)

    @property
    def start_date(self) -> date:
        return self.range_start.date()

    @property
    def end_date(self) -> date:
        return self.range_end.date()


class SyncError(BaseModel):
    """One entry of a run's ordered error list"""
    model_config = ConfigDict(frozen=True)

    type: str
    context: Dict[str, Any] = Field(default_factory=dict)
    message: str
    critical: bool = False


class FailedBatch(BaseModel):
    """An upsert batch that was rolled back"""
    index: int
    size: int
    natural_keys: List[str] = Field(default_factory=list)
    error: str


class UpsertResult(BaseModel):
    """Outcome of writing one table's rows"""
    table: str
    written: int = 0
    failed_batches: List[FailedBatch] = Field(default_factory=list)

    @property
    def failed_rows(self) -> int:
        return sum(batch.size for batch in self.failed_batches)

    @property
    def complete(self) -> bool:
        return not self.failed_batches


class DeletionResult(BaseModel):
    """Outcome of reconciling one table"""
    table: str
    executed: bool = False
    deleted_count: int = 0
    skipped_reason: Optional[str] = None


class SyncRunSummary(BaseModel):
    """
    Structured summary produced by every invocation, even a total failure.

    This is the only observability contract exposed to operational tooling.
    """
    model_config = ConfigDict(use_enum_values=True, from_attributes=True)

    sync_run_id: str
    sync_run_at: datetime
    source: SourceType
    scope_key: str
    status: RunStatus
    fetch_complete: bool
    range_start: datetime
    range_end: datetime
    record_counts: Dict[str, int] = Field(default_factory=dict)
    error_count: int = 0
    errors: List[SyncError] = Field(default_factory=list)
    upserts: List[UpsertResult] = Field(default_factory=list)
    reconciliations: List[DeletionResult] = Field(default_factory=list)
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
