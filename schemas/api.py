"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List
from datetime import datetime, timezone
from models.base import SourceType, RunStatus
from models.sync_run import SyncRunRecord
from schemas.sync import SyncRunSummary


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def summary_from_record(record: SyncRunRecord) -> SyncRunSummary:
    """Rebuild the run summary from its stored row"""
    return SyncRunSummary(
        sync_run_id=record.run_id,
        sync_run_at=record.started_at,
        source=record.source,
        scope_key=record.scope_key,
        status=record.status,
        fetch_complete=record.fetch_complete,
        range_start=record.range_start,
        range_end=record.range_end,
        record_counts=record.record_counts or {},
        error_count=record.error_count or 0,
        errors=record.errors or [],
        upserts=record.upserts or [],
        reconciliations=record.reconciliations or [],
        completed_at=record.completed_at,
        duration_seconds=record.duration_seconds,
    )


# ============================================================================
# Health Check Schemas
# ============================================================================

class SourceRunStatus(BaseModel):
    """Latest run of one source, for the health check"""
    model_config = ConfigDict(use_enum_values=True)

    source: SourceType
    scope_key: str
    last_run_id: str
    status: RunStatus
    fetch_complete: bool
    last_run_at: datetime
    error_count: int = 0


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(default="healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=_utcnow)
    database_connected: bool
    sources: List[SourceRunStatus] = Field(default_factory=list)
    total_sources: int = 0
    successful_sources: int = 0
    failed_sources: int = 0

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.total_sources == 0 or self.successful_sources == self.total_sources:
            # No runs recorded yet counts as healthy
            self.status = "healthy"
        elif self.failed_sources < self.total_sources:
            self.status = "degraded"
        else:
            self.status = "unhealthy"
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "degraded",
                "timestamp": "2026-03-15T10:30:00Z",
                "database_connected": True,
                "total_sources": 3,
                "successful_sources": 2,
                "failed_sources": 0,
                "sources": [
                    {
                        "source": "time_tracking",
                        "scope_key": "ws_123",
                        "last_run_id": "4f0c8a8e-2a8e-4a57-9f3b-0a4f3b1d2c11",
                        "status": "partial",
                        "fetch_complete": False,
                        "last_run_at": "2026-03-15T10:00:00Z",
                        "error_count": 1
                    }
                ]
            }
        }
    )


# ============================================================================
# Run Query Schemas
# ============================================================================

class RunListResponse(BaseModel):
    """Most recent run summaries, newest first"""
    items: List[SyncRunSummary]
    total: int
    limit: int
    source: Optional[SourceType] = None

    model_config = ConfigDict(use_enum_values=True)


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Resource not found",
                "detail": "Sync run 4f0c8a8e-2a8e-4a57-9f3b-0a4f3b1d2c11 does not exist",
                "timestamp": "2026-03-15T10:30:00Z"
            }
        }
    )
