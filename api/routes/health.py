"""
Health check endpoint with database and queue status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select, text
from api.dependencies import get_db
from core.exceptions import QueueStateError
from ingestion.queue import TaskQueue
from models.etl_run import ETLRun
from schemas.api import ETLRunResponse, HealthCheckResponse, QueueProgressResponse
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Today's queue progress
    - The most recent ETL run
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")
        await db.rollback()

    queue = None
    last_run = None

    if db_connected:
        try:
            progress = await TaskQueue(db).get_progress(datetime.utcnow().date())
            queue = QueueProgressResponse.from_progress(progress)
        except QueueStateError as e:
            logger.error(f"Failed to fetch queue progress: {e.message}")

        try:
            result = await db.execute(select(ETLRun).order_by(ETLRun.started_at.desc()).limit(1))
            run = result.scalars().first()
            if run is not None:
                last_run = ETLRunResponse.model_validate(run)
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch last ETL run: {str(e)}")
            await db.rollback()

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        queue=queue,
        last_run=last_run
    )
