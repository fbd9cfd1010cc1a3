"""
Pydantic schemas for data validation and serialization.

This package defines Pydantic models used across the sync pipeline and the
run metadata API:

Schemas:
    records: Raw upstream records (tagged by kind) and fetch results
    normalized: Validated row models, one per target table
    sync: Ingestion window, run errors, stage results and the run summary
    api: API endpoint response models

Usage:
    from schemas.sync import IngestionWindow, SyncRunSummary
    from schemas.normalized import TrackerEntryRow
    from schemas.api import HealthCheckResponse

Validation:
    Row schemas reject records that cannot be stored (missing natural key,
    non-positive or unrounded durations); the normalizer drops those rows
    instead of failing the run.
"""

__all__ = [
    "IngestionWindow",
    "SyncError",
    "SyncRunSummary",
    "UpsertResult",
    "DeletionResult",
    "SourceRecord",
    "FetchResult",
    "NormalizedRow",
    "HealthCheckResponse",
    "RunListResponse",
]
