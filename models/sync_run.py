from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, Enum, Index
from datetime import datetime, timezone
from models.base import Base, BigIntPK, JSONType, SourceType, RunStatus


class SyncRunRecord(Base):
    """
    One row per pipeline invocation, including total failures.

    Purpose:
    - Run metadata surface for operational tooling
    - Audit trail of fetch completeness and reconciliation decisions
    - Error tracking and debugging

    Design:
    - run_id is the token stamped on every row the run wrote
    - errors holds the ordered {type, context, message} list from the run
    - upserts / reconciliations hold per-table stage results
    """
    __tablename__ = "sync_runs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(String(36), unique=True, nullable=False, index=True)

    # Source identification
    source = Column(Enum(SourceType), nullable=False, index=True)
    scope_key = Column(String(100), nullable=False)

    status = Column(Enum(RunStatus), default=RunStatus.RUNNING, nullable=False, index=True)
    fetch_complete = Column(Boolean, nullable=False, default=False)

    # Ingestion window
    range_start = Column(DateTime(timezone=True), nullable=False)
    range_end = Column(DateTime(timezone=True), nullable=False)

    # Timestamps
    started_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    record_counts = Column(JSONType, nullable=True)
    error_count = Column(Integer, default=0)
    errors = Column(JSONType, nullable=True)
    upserts = Column(JSONType, nullable=True)
    reconciliations = Column(JSONType, nullable=True)

    __table_args__ = (
        Index("idx_sync_run_source_started", "source", "started_at"),
    )
