import logging
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import Settings, settings as default_settings
from core.exceptions import ETLException
from ingestion.runner import run_once
from schemas.queue import RunSummary

logger = logging.getLogger(__name__)

JOB_ID = "etl_batch_job"


class ETLScheduler:
    """Invoke one bounded batch run every ETL_SCHEDULE_INTERVAL_MINUTES"""

    def __init__(
        self,
        config: Optional[Settings] = None,
        job: Optional[Callable[[], Awaitable[RunSummary]]] = None
    ):
        self.config = config or default_settings
        self.scheduler = AsyncIOScheduler()
        self._job = job or (lambda: run_once(self.config))
        self.last_summary: Optional[RunSummary] = None

    async def run_etl_job(self):
        """Job to run one batch"""
        logger.info("Scheduler: Starting ETL batch job")
        try:
            self.last_summary = await self._job()
            logger.info(f"Scheduler: ETL batch job finished ({self.last_summary.status.value})")
        except ETLException as e:
            logger.error(f"Scheduler: ETL batch job failed - {e.message}", extra={"error_context": e.to_dict()})
        except Exception as e:
            logger.exception(f"Scheduler: ETL batch job failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_etl_job,
            trigger=IntervalTrigger(minutes=self.config.ETL_SCHEDULE_INTERVAL_MINUTES),
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,  # never overlap runs for the same date
            coalesce=True
        )
        self.scheduler.start()
        logger.info(f"ETL Scheduler started (every {self.config.ETL_SCHEDULE_INTERVAL_MINUTES} minutes)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("ETL Scheduler stopped")
