"""
Health check endpoint with database and sync status
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from api.dependencies import get_db
from core.database import ping
from schemas.api import HealthCheckResponse, SourceRunStatus
from models.base import RunStatus
from models.sync_run import SyncRunRecord
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Latest run for every (source, scope) that has run
    """
    request_id = getattr(request.state, "request_id", None)

    db_connected = await ping(db)
    if not db_connected:
        logger.error(f"[{request_id}] Database connection failed")
        return HealthCheckResponse(database_connected=False)

    sources = []
    successful_sources = 0
    failed_sources = 0

    try:
        latest_ids = (
            select(func.max(SyncRunRecord.id))
            .group_by(SyncRunRecord.source, SyncRunRecord.scope_key)
            .scalar_subquery()
        )
        result = await db.execute(
            select(SyncRunRecord)
            .where(SyncRunRecord.id.in_(latest_ids))
            .order_by(SyncRunRecord.source, SyncRunRecord.scope_key)
        )
        for record in result.scalars().all():
            if record.status == RunStatus.SUCCESS:
                successful_sources += 1
            elif record.status == RunStatus.FAILED:
                failed_sources += 1

            sources.append(SourceRunStatus(
                source=record.source,
                scope_key=record.scope_key,
                last_run_id=record.run_id,
                status=record.status,
                fetch_complete=record.fetch_complete,
                last_run_at=record.started_at,
                error_count=record.error_count or 0
            ))
    except Exception as e:
        logger.error(f"[{request_id}] Failed to fetch latest sync runs: {str(e)}")

    # Overall status is derived by HealthCheckResponse
    return HealthCheckResponse(
        database_connected=db_connected,
        sources=sources,
        total_sources=len(sources),
        successful_sources=successful_sources,
        failed_sources=failed_sources
    )
