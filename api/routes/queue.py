"""
Task queue inspection and operator actions
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from core.config import settings
from ingestion.queue import TaskQueue
from ingestion.transformers.field_mapping import get_market_profile
from models.base import QueueStatus
from schemas.api import (
    QueueActionResponse,
    QueueProgressResponse,
    ReclaimRequest,
    ResetFailedRequest,
    ResetQueueRequest,
    StopQueueRequest,
    StopQueueResponse,
)
from schemas.queue import QueueEntryRead
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/queue", tags=["Queue"])


def _today() -> date:
    return datetime.utcnow().date()


@router.get("/progress", response_model=QueueProgressResponse)
async def get_queue_progress(
    run_date: Optional[date] = Query(None, description="Queue date (defaults to today, UTC)"),
    db: AsyncSession = Depends(get_db)
):
    """Counts per status, success rate and completion rate"""
    progress = await TaskQueue(db).get_progress(run_date or _today())
    return QueueProgressResponse.from_progress(progress)


@router.get("/entries", response_model=List[QueueEntryRead])
async def list_queue_entries(
    run_date: Optional[date] = Query(None, description="Queue date (defaults to today, UTC)"),
    status: Optional[QueueStatus] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db)
):
    """Queue rows in (batch_number, entity_key) order"""
    return await TaskQueue(db).list_entries(run_date or _today(), status=status, limit=limit)


@router.post("/reset-failed", response_model=QueueActionResponse)
async def reset_failed_entries(request: ResetFailedRequest, db: AsyncSession = Depends(get_db)):
    """Failed entries go back to pending so the next run retries them"""
    affected = await TaskQueue(db).reset_failed(request.run_date, request.entity_keys)
    logger.info(f"Operator reset {affected} failed entries for {request.run_date}")
    return QueueActionResponse(run_date=request.run_date, action="reset_failed", affected=affected)


@router.post("/reclaim", response_model=QueueActionResponse)
async def reclaim_stale_entries(request: ReclaimRequest, db: AsyncSession = Depends(get_db)):
    """Processing entries older than the lease go back to pending"""
    minutes = request.older_than_minutes
    if minutes is None:
        minutes = settings.ETL_PROCESSING_LEASE_MINUTES

    affected = await TaskQueue(db).reclaim_stale(request.run_date, timedelta(minutes=minutes))
    return QueueActionResponse(run_date=request.run_date, action="reclaim", affected=affected)


@router.post("/reset", response_model=QueueActionResponse)
async def reset_queue(request: ResetQueueRequest, db: AsyncSession = Depends(get_db)):
    """Delete the date's queue and initialize it again from the market's target table"""
    profile = get_market_profile(request.market or settings.ETL_MARKET)
    queue = TaskQueue(
        db,
        target_model=profile.target_model,
        key_column=profile.key_column,
        batch_size=settings.ETL_BATCH_SIZE
    )
    affected = await queue.reset_queue(request.run_date)
    return QueueActionResponse(run_date=request.run_date, action="reset", affected=affected)


@router.post("/stop", response_model=StopQueueResponse)
async def stop_queue(request: StopQueueRequest, db: AsyncSession = Depends(get_db)):
    """Market close: unfinished entries become failed and the day's counts are returned"""
    run_date = request.run_date or _today()
    queue = TaskQueue(db)

    stopped = await queue.close_day(run_date)
    progress = await queue.get_progress(run_date)
    logger.info(
        f"Queue for {run_date} stopped: {stopped} entries closed, "
        f"{progress.completed} completed, {progress.failed} failed"
    )
    return StopQueueResponse(
        run_date=run_date,
        stopped=stopped,
        progress=QueueProgressResponse.from_progress(progress)
    )
