"""
SQLAlchemy ORM models for database tables.

This package defines the database schema using SQLAlchemy ORM models:

Models:
    base: Base declarative class and shared enums (SourceType, RunStatus)
    entries: The four tables the pipeline owns (tracker_entries,
        time_tracking_entries, hr_employees, hr_time_off)
    sync_run: Run metadata summary, one row per invocation
    lease: Per-scope mutual-exclusion leases

Database Schema:
    All models inherit from the Base declarative class. JSON columns use
    JSONB on PostgreSQL and plain JSON on other dialects.

Usage:
    from models import TrackerEntry, SyncRunRecord
    from models.base import SourceType, RunStatus

Ownership:
    - Entry tables are written only by the upsert engine and pruned only by
      the reconciler; the reporting layer reads them.
    - SyncRunRecord rows are written once, at the end of each run.
"""

from models.base import Base, SourceType, RunStatus
from models.entries import (
    TrackerEntry,
    TimeTrackingEntry,
    HREmployee,
    HRTimeOff,
    SYNC_TABLES,
)
from models.sync_run import SyncRunRecord
from models.lease import SyncLease

__all__ = [
    "Base",
    "SourceType",
    "RunStatus",
    "TrackerEntry",
    "TimeTrackingEntry",
    "HREmployee",
    "HRTimeOff",
    "SYNC_TABLES",
    "SyncRunRecord",
    "SyncLease",
]
