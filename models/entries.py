from sqlalchemy import Column, String, Integer, Float, Date, DateTime, Boolean, Text, Index
from datetime import datetime, timezone
from models.base import Base, BigIntPK


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncedRowMixin:
    """
    Columns shared by every table the pipeline owns.

    Ownership:
    - Rows are written only by the upsert engine and deleted only by the
      reconciler; readers never mutate them.
    - natural_key is the upstream identifier and carries the unique
      constraint used for ON CONFLICT.
    - sync_run_id / synced_at identify the run that last wrote the row.
      NULL sync_run_id marks legacy rows written before run tracking.
    """
    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    natural_key = Column(String(255), nullable=False, unique=True)
    scope_key = Column(String(100), nullable=False)

    subject_id = Column(String(100), nullable=True)
    subject_name = Column(String(255), nullable=False, default="Unknown")
    container_id = Column(String(100), nullable=True)
    container_name = Column(String(255), nullable=True)

    # Sync run tracking
    sync_run_id = Column(String(36), nullable=True)
    synced_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class TimeEntryMixin(SyncedRowMixin):
    """
    Time entry columns common to both time sources.

    Field Mapping Strategy:

    Tracker (ClickUp):
    - id -> natural_key
    - start (epoch ms) -> work_date
    - folder (fallback space) -> container
    - space -> client
    - user.username -> subject_name

    Time tracking (Clockify):
    - _id / id -> natural_key
    - timeInterval.start -> work_date
    - projectId / projectName -> container
    - clientId / clientName -> client
    - userName -> subject_name
    """
    work_date = Column(Date, nullable=False)

    subject_email = Column(String(255), nullable=True)
    client_id = Column(String(100), nullable=True)
    client_name = Column(String(255), nullable=True)
    task_id = Column(String(100), nullable=True)
    task_name = Column(String(500), nullable=False, default="(no description)")
    billable = Column(Boolean, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    # Minutes worked, rounded up to 15-minute increments
    quantity = Column(Integer, nullable=False)


class TrackerEntry(TimeEntryMixin, Base):
    """Time entries from the project/task tracker."""
    __tablename__ = "tracker_entries"

    __table_args__ = (
        Index("idx_tracker_scope_date", "scope_key", "work_date"),
        Index("idx_tracker_sync_run", "sync_run_id"),
    )


class TimeTrackingEntry(TimeEntryMixin, Base):
    """Time entries from the time-tracking service's detailed report."""
    __tablename__ = "time_tracking_entries"

    __table_args__ = (
        Index("idx_time_tracking_scope_date", "scope_key", "work_date"),
        Index("idx_time_tracking_sync_run", "sync_run_id"),
    )


class HREmployee(SyncedRowMixin, Base):
    """
    Employee directory entries.

    The directory is not date-filtered upstream, so work_date stays NULL and
    reconciliation for this table is scoped by scope_key alone.
    """
    __tablename__ = "hr_employees"

    work_date = Column(Date, nullable=True)

    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    work_email = Column(String(255), nullable=True)
    job_title = Column(String(255), nullable=True)

    quantity = Column(Float, nullable=True)

    __table_args__ = (
        Index("idx_hr_employees_scope", "scope_key"),
    )


class HRTimeOff(SyncedRowMixin, Base):
    """Time-off requests; work_date is the first day off."""
    __tablename__ = "hr_time_off"

    work_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)

    subject_email = Column(String(255), nullable=True)
    status = Column(String(50), nullable=False, default="unknown")
    notes = Column(Text, nullable=True)

    # Day count
    quantity = Column(Float, nullable=False, default=0.0)

    __table_args__ = (
        Index("idx_hr_time_off_scope_date", "scope_key", "work_date"),
    )


SYNC_TABLES = {
    model.__tablename__: model
    for model in (TrackerEntry, TimeTrackingEntry, HREmployee, HRTimeOff)
}
