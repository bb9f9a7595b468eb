# ============================================================================
# File: ingestion/runner.py
# Description: Bounded batch orchestrator with wall-clock deadline
# ============================================================================
"""
Batch Runner - one bounded invocation against the daily task queue.

Each run:
1. Ensures the queue table exists and reclaims stale processing entries
2. Initializes today's queue once (no-op when rows already exist)
3. Claims the next pending batch and processes it entity by entity
4. Stops cooperatively at the deadline, releasing unreached entries
5. Records counts in the run ledger and returns a RunSummary

Anything not finished stays pending for the next invocation.
"""

import asyncio
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import httpx
import logging

from core.config import Settings, settings as default_settings
from core.database import Database
from core.exceptions import ConfigurationError, ETLException, PersistenceError
from ingestion.extractors import build_providers
from ingestion.extractors.base import Provider
from ingestion.loaders.postgres_loader import TargetUpdater
from ingestion.queue import TaskQueue
from ingestion.rate_limiter import RateLimiter
from ingestion.transformers.field_mapping import MarketProfile, get_market_profile
from ingestion.worker import EntityWorker
from models.base import RunStatus
from models.etl_run import ETLRun
from schemas.queue import BatchResult, RunSummary

logger = logging.getLogger(__name__)


class Deadline:
    """Wall-clock budget for one run"""

    def __init__(
        self,
        start: datetime,
        max_runtime_minutes: float,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.start = start
        self.at = start + timedelta(minutes=max_runtime_minutes)
        self.clock = clock

    def expired(self) -> bool:
        return self.clock() >= self.at

    def remaining_seconds(self) -> float:
        return max((self.at - self.clock()).total_seconds(), 0.0)


class BatchRunner:
    """
    Bounded batch orchestrator

    Responsibilities:
    - Queue bootstrap (DDL, lease reclaim, daily initialization)
    - Claim one batch and drive the worker over it
    - Enforce the deadline before claiming and before every entity
    - Apply the static inter-entity delay
    - Record run metrics in etl_runs
    """

    def __init__(
        self,
        db_session: AsyncSession,
        profile: MarketProfile,
        providers: Sequence[Provider],
        batch_size: int = 50,
        max_runtime_minutes: float = 160,
        lease_minutes: int = 180,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.db = db_session
        self.profile = profile
        self.providers = list(providers)
        self.batch_size = batch_size
        self.max_runtime_minutes = max_runtime_minutes
        self.lease_minutes = lease_minutes
        self.clock = clock

        self.queue = TaskQueue(
            db_session,
            target_model=profile.target_model,
            key_column=profile.key_column,
            batch_size=batch_size,
            clock=clock
        )
        self.updater = TargetUpdater(db_session, profile, clock=clock)
        self.worker = EntityWorker(self.queue, self.updater, self.providers, profile)
        self.rate_limiter = rate_limiter or RateLimiter.for_providers(self.providers, sleep=sleep)

    async def run(self, run_date: date, entity_keys: Optional[Iterable[str]] = None) -> RunSummary:
        """
        Execute one bounded run for ``run_date``.

        Args:
            run_date: Queue partition to work on
            entity_keys: Explicit candidate set for initialization (defaults to the target table)

        Returns:
            RunSummary with status completed, deadline_reached or idle

        Raises:
            ETLException: If the queue cannot be read or transitioned
        """
        started_at = self.clock()
        deadline = Deadline(started_at, self.max_runtime_minutes, clock=self.clock)

        logger.info(
            f"Starting {self.profile.name} run for {run_date} "
            f"(batch size {self.batch_size}, deadline {deadline.at.isoformat()})"
        )

        summary = RunSummary(
            market=self.profile.name,
            run_date=run_date,
            status=RunStatus.RUNNING,
            started_at=started_at,
            deadline_at=deadline.at
        )

        run_pk = None

        try:
            # --------------------------------------------------
            # PHASE 1: QUEUE BOOTSTRAP
            # --------------------------------------------------
            await self.queue.ensure_queue_table()
            await self._ensure_run_ledger()
            run_pk = await self._start_run(summary)

            if self.lease_minutes > 0:
                summary.reclaimed = await self.queue.reclaim_stale(
                    run_date, timedelta(minutes=self.lease_minutes)
                )

            summary.initialized = await self.queue.initialize_daily_queue(run_date, entity_keys)

            # --------------------------------------------------
            # PHASE 2: CLAIM AND PROCESS ONE BATCH
            # --------------------------------------------------
            if deadline.expired():
                logger.warning("Runtime limit reached before claiming a batch")
                summary.status = RunStatus.DEADLINE_REACHED
            else:
                batch = await self.run_batch(run_date, deadline)
                summary.batch = batch

                if not batch.claimed:
                    logger.info(f"All entities have been processed for {run_date}")
                    summary.status = RunStatus.IDLE
                elif batch.deadline_reached:
                    summary.status = RunStatus.DEADLINE_REACHED
                else:
                    summary.status = RunStatus.COMPLETED

            summary.progress = await self.queue.get_progress(run_date)

        except ETLException as e:
            logger.error(f"Batch run failed: {e.message}", extra={"error_context": e.to_dict()})
            await self.db.rollback()
            summary.status = RunStatus.FAILED
            summary.error_message = e.message
            await self._finish_run(summary, run_pk)
            raise

        except Exception as e:
            logger.exception("Unexpected error in batch run")
            await self.db.rollback()
            summary.status = RunStatus.FAILED
            summary.error_message = f"{type(e).__name__}: {e}"
            await self._finish_run(summary, run_pk)
            raise ETLException(
                "Unexpected error in batch run",
                context={"market": self.profile.name, "run_date": run_date.isoformat()},
                original_exception=e
            )

        await self._finish_run(summary, run_pk)
        log_summary(summary)
        return summary

    async def run_batch(self, run_date: date, deadline: Deadline) -> BatchResult:
        """Claim the next pending batch and process it until done or out of time"""
        entries = await self.queue.next_batch(run_date, self.batch_size)
        if not entries:
            return BatchResult()

        keys = [entry.entity_key for entry in entries]
        result = BatchResult(batch_number=entries[0].batch_number, claimed=keys)

        logger.info(f"Processing batch {result.batch_number} ({len(keys)} entities): {', '.join(keys)}")
        await self.queue.mark_processing(run_date, keys)

        index = 0
        try:
            for index, entity_key in enumerate(keys):
                if deadline.expired():
                    remaining = keys[index:]
                    logger.warning(
                        f"Runtime limit reached during batch - stopping at {entity_key}, "
                        f"{len(remaining)} entities returned to pending"
                    )
                    await self.queue.release(run_date, remaining)
                    result.released = remaining
                    result.deadline_reached = True
                    break

                outcome = await self.worker.process(entity_key, run_date)
                result.outcomes.append(outcome)

                if index < len(keys) - 1 and not deadline.expired():
                    await self.rate_limiter.wait()

        except Exception:
            await self._release_after_error(run_date, keys[index:])
            raise

        logger.info(
            f"Batch {result.batch_number} results: {result.completed} completed, "
            f"{result.failed} failed, {len(result.released)} released "
            f"({result.success_rate:.1f}% success)"
        )
        return result

    async def _release_after_error(self, run_date: date, remaining: List[str]):
        """Put the failing entity and everything after it back to pending"""
        await self.db.rollback()
        try:
            released = await self.queue.release(run_date, remaining)
        except ETLException as e:
            logger.error(f"Could not release unprocessed entries: {e.message}")
            return
        logger.warning(f"Batch aborted - {released} unprocessed entities returned to pending")

    # ------------------------------------------------------------------
    # Run ledger
    # ------------------------------------------------------------------

    async def _ensure_run_ledger(self):
        table = ETLRun.__table__
        try:
            conn = await self.db.connection()
            await conn.run_sync(lambda sync_conn: table.create(sync_conn, checkfirst=True))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Failed to ensure run ledger table",
                context={"operation": "DDL", "table_name": table.name},
                original_exception=e
            )

    async def _start_run(self, summary: RunSummary) -> int:
        run = ETLRun(
            market=summary.market,
            run_date=summary.run_date,
            status=RunStatus.RUNNING,
            started_at=summary.started_at,
            deadline_at=summary.deadline_at,
            config_snapshot={
                "batch_size": self.batch_size,
                "max_runtime_minutes": self.max_runtime_minutes,
                "lease_minutes": self.lease_minutes,
                "delay_seconds": self.rate_limiter.delay_seconds,
                "providers": [p.name for p in self.providers],
            }
        )
        try:
            self.db.add(run)
            await self.db.flush()
            run_pk, run_id = run.id, run.run_id
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Failed to record ETL run start",
                context={"operation": "INSERT", "table_name": ETLRun.__tablename__},
                original_exception=e
            )

        summary.run_id = str(run_id)
        return run_pk

    async def _finish_run(self, summary: RunSummary, run_pk: Optional[int] = None):
        """Close the run ledger row; failures here are logged, not raised"""
        summary.completed_at = self.clock()
        if run_pk is None:
            return

        batch = summary.batch or BatchResult()
        try:
            await self.db.execute(
                update(ETLRun)
                .where(ETLRun.id == run_pk)
                .values(
                    status=summary.status,
                    completed_at=summary.completed_at,
                    duration_seconds=summary.duration_seconds,
                    batch_number=batch.batch_number,
                    entities_claimed=len(batch.claimed),
                    entities_completed=batch.completed,
                    entities_failed=batch.failed,
                    entities_released=len(batch.released),
                    entities_reclaimed=summary.reclaimed,
                    error_message=summary.error_message
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to record ETL run completion: {e}")


def log_summary(summary: RunSummary):
    """Operator-facing end-of-run report"""
    logger.info(f"Run {summary.run_id} finished: {summary.status.value}")

    progress = summary.progress
    if progress is not None:
        logger.info(
            f"Queue progress for {progress.run_date}: "
            f"pending={progress.pending} processing={progress.processing} "
            f"completed={progress.completed} failed={progress.failed} total={progress.total} "
            f"(success {progress.success_rate:.1f}%, completion {progress.completion_rate:.1f}%)"
        )

    if summary.duration_seconds is not None:
        logger.info(f"Runtime: {summary.duration_seconds / 60:.1f} minutes")


# ============================================================================
# Entry point used by the CLI and the periodic scheduler
# ============================================================================

async def run_once(
    config: Optional[Settings] = None,
    market: Optional[str] = None,
    run_date: Optional[date] = None,
    batch_size: Optional[int] = None,
    max_runtime_minutes: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> RunSummary:
    """
    Build everything one run needs from settings, run it and clean up.

    Raises:
        ConfigurationError: If required settings are missing or placeholders
        ETLException: If the run fails
    """
    config = config or default_settings

    missing = config.missing_for_etl()
    if missing:
        raise ConfigurationError(
            f"Missing required configuration: {', '.join(missing)}",
            context={"missing": missing}
        )

    profile = get_market_profile(market or config.ETL_MARKET)

    database = Database(config.DATABASE_URL)
    async with database:
        async with httpx.AsyncClient(transport=transport) as client:
            async with database.session() as session:
                return await run_with_session(
                    session,
                    client,
                    config,
                    market=profile.name,
                    run_date=run_date,
                    batch_size=batch_size,
                    max_runtime_minutes=max_runtime_minutes
                )


async def run_with_session(
    session: AsyncSession,
    client: httpx.AsyncClient,
    config: Settings,
    market: Optional[str] = None,
    run_date: Optional[date] = None,
    batch_size: Optional[int] = None,
    max_runtime_minutes: Optional[float] = None
) -> RunSummary:
    """One bounded run on an already open session and HTTP client (used by the API)"""
    profile = get_market_profile(market or config.ETL_MARKET)
    run_date = run_date or config.ETL_RUN_DATE or datetime.utcnow().date()

    runner = BatchRunner(
        session,
        profile,
        build_providers(config, client),
        batch_size=batch_size or config.ETL_BATCH_SIZE,
        max_runtime_minutes=(
            max_runtime_minutes if max_runtime_minutes is not None
            else config.ETL_MAX_RUNTIME_MINUTES
        ),
        lease_minutes=config.ETL_PROCESSING_LEASE_MINUTES
    )
    return await runner.run(run_date)
