"""
Sync run metadata endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from api.dependencies import get_db
from schemas.api import RunListResponse, summary_from_record
from schemas.sync import SyncRunSummary
from models.base import SourceType
from models.sync_run import SyncRunRecord
from typing import Optional
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Runs"])


@router.get("/runs", response_model=RunListResponse)
async def list_runs(
    request: Request,
    source: Optional[SourceType] = Query(None, description="Filter by source"),
    limit: int = Query(20, ge=1, le=200, description="Number of runs to return"),
    db: AsyncSession = Depends(get_db)
):
    """Most recent run summaries, newest first"""
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] GET /runs - source={source}, limit={limit}")

    query = select(SyncRunRecord)
    count_query = select(func.count()).select_from(SyncRunRecord)
    if source:
        query = query.where(SyncRunRecord.source == source)
        count_query = count_query.where(SyncRunRecord.source == source)

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(
        query.order_by(SyncRunRecord.started_at.desc(), SyncRunRecord.id.desc()).limit(limit)
    )

    return RunListResponse(
        items=[summary_from_record(record) for record in result.scalars().all()],
        total=total,
        limit=limit,
        source=source
    )


@router.get("/runs/{run_id}", response_model=SyncRunSummary)
async def get_run(run_id: str, db: AsyncSession = Depends(get_db)):
    """Summary of one run by id"""
    record = await db.scalar(select(SyncRunRecord).where(SyncRunRecord.run_id == run_id))
    if record is None:
        raise HTTPException(status_code=404, detail=f"Sync run {run_id} does not exist")
    return summary_from_record(record)
