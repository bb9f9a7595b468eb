"""
ETL run history and on-demand batch runs
"""

import asyncio
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_http_client, get_settings
from core.config import Settings
from core.exceptions import ConfigurationError
from ingestion.runner import run_with_session
from models.etl_run import ETLRun
from schemas.api import ETLRunResponse, RunRequest
from schemas.queue import RunSummary
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Runs"])

# One API-triggered run at a time per process
_run_lock = asyncio.Lock()


@router.get("/runs", response_model=List[ETLRunResponse])
async def list_runs(
    limit: int = Query(10, ge=1, le=100, description="Number of recent runs to return"),
    market: Optional[str] = Query(None, description="Filter by market profile"),
    db: AsyncSession = Depends(get_db)
):
    """Most recent runs first"""
    query = select(ETLRun)
    if market:
        query = query.where(ETLRun.market == market)
    result = await db.execute(query.order_by(ETLRun.started_at.desc(), ETLRun.id.desc()).limit(limit))
    return [ETLRunResponse.model_validate(run) for run in result.scalars().all()]


@router.post("/runs", response_model=RunSummary)
async def trigger_run(
    request: RunRequest,
    db: AsyncSession = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
    config: Settings = Depends(get_settings)
):
    """
    Process the next batch now, the same way the CLI and the scheduler do.

    Returns the RunSummary once the batch is done or the runtime limit is hit.
    """
    missing = config.missing_for_providers()
    if missing:
        raise ConfigurationError(
            f"Missing required configuration: {', '.join(missing)}",
            context={"missing": missing}
        )

    if _run_lock.locked():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A batch run is already in progress"
        )

    async with _run_lock:
        logger.info("Batch run triggered via API")
        return await run_with_session(
            db,
            client,
            config,
            market=request.market,
            run_date=request.run_date,
            batch_size=request.batch_size,
            max_runtime_minutes=request.max_runtime_minutes
        )
