"""
Persisted daily task queue with batch partitioning.

The queue is the checkpoint between bounded runs: each run claims the next
pending batch, and whatever it does not finish stays pending for the next
invocation. Entries move pending -> processing -> completed | failed and
are never handed out again once terminal.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import QueueStateError
from models.base import QueueStatus
from models.task_queue import ETLTaskQueue
from schemas.queue import QueueEntryRead, QueueProgress
import logging

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
MARKET_CLOSE_MESSAGE = "stopped at market close"
ACTIVE_STATUSES = (QueueStatus.PENDING, QueueStatus.PROCESSING)


def partition_into_batches(entity_keys: Iterable[str], batch_size: int) -> List[Dict[str, object]]:
    """
    Sort and de-duplicate keys, then assign contiguous batch numbers from 1.

    Keys are kept exactly as stored so they still match the target row;
    only empty or blank keys are dropped.

    Returns:
        List of {"entity_key", "batch_number"} dictionaries in key order
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    keys = sorted({k for k in entity_keys if k and k.strip()})
    return [
        {"entity_key": key, "batch_number": index // batch_size + 1}
        for index, key in enumerate(keys)
    ]


class TaskQueue:
    """
    Task queue operations against the ``etl_task_queue`` table.

    Responsibilities:
    - Idempotent DDL for the queue table and its (status, run_date) index
    - Daily initialization from the candidate entity set
    - Handing out the next pending batch in deterministic order
    - Status transitions and progress counts

    Attributes:
        target_model: ORM model whose key column supplies the candidate set
        key_column: Name of the key column on target_model
        batch_size: Entities per batch assigned at initialization
    """

    def __init__(
        self,
        db_session: AsyncSession,
        target_model=None,
        key_column: str = "ticker",
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.db = db_session
        self.target_model = target_model
        self.key_column = key_column
        self.batch_size = batch_size
        self.clock = clock

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    async def ensure_queue_table(self):
        """Create the queue table and its index if they do not exist"""
        table = ETLTaskQueue.__table__

        def _create(sync_conn):
            table.create(sync_conn, checkfirst=True)
            for index in table.indexes:
                index.create(sync_conn, checkfirst=True)

        try:
            conn = await self.db.connection()
            await conn.run_sync(_create)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise QueueStateError(
                "Failed to ensure task queue table",
                context={"operation": "DDL", "table_name": table.name},
                original_exception=e
            )

        logger.info("ETL task queue table ensured")

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def count_entries(self, run_date: date) -> int:
        result = await self._execute(
            select(func.count()).select_from(ETLTaskQueue).where(ETLTaskQueue.run_date == run_date),
            "SELECT"
        )
        return result.scalar() or 0

    async def load_candidates(self) -> List[str]:
        """All entity keys from the target table, sorted"""
        if self.target_model is None:
            raise QueueStateError(
                "No target model configured to load candidate entities",
                context={"operation": "SELECT"}
            )

        key = getattr(self.target_model, self.key_column)
        result = await self._execute(select(key).order_by(key), "SELECT")
        return [row[0] for row in result.all()]

    async def initialize_daily_queue(
        self,
        run_date: date,
        entity_keys: Optional[Iterable[str]] = None
    ) -> int:
        """
        Create today's queue generation once.

        Args:
            run_date: Date partition to initialize
            entity_keys: Explicit candidate set; defaults to the target table keys

        Returns:
            Number of entries created (0 when the date was already initialized)
        """
        existing = await self.count_entries(run_date)
        if existing > 0:
            logger.info(f"Queue for {run_date} already initialized ({existing} tasks)")
            return 0

        if entity_keys is None:
            entity_keys = await self.load_candidates()

        assignments = partition_into_batches(entity_keys, self.batch_size)
        if not assignments:
            logger.warning(f"No candidate entities found; queue for {run_date} left empty")
            return 0

        logger.info(f"Initializing queue for {run_date} with {len(assignments)} entities")

        now = self.clock()
        insert = self._dialect_insert()

        for start in range(0, len(assignments), self.batch_size):
            rows = [
                {
                    **assignment,
                    "run_date": run_date,
                    "status": QueueStatus.PENDING,
                    "created_at": now,
                    "updated_at": now,
                }
                for assignment in assignments[start:start + self.batch_size]
            ]
            stmt = insert(ETLTaskQueue).values(rows).on_conflict_do_nothing(
                index_elements=["entity_key", "run_date"]
            )
            await self._execute(stmt, "INSERT", commit=False)

        await self._commit()

        created = await self.count_entries(run_date)
        batches = assignments[-1]["batch_number"]
        logger.info(f"Queue for {run_date} initialized: {created} tasks in {batches} batches")
        return created

    async def reset_queue(self, run_date: date, entity_keys: Optional[Iterable[str]] = None) -> int:
        """Drop the date's queue generation and build it again"""
        result = await self._execute(
            delete(ETLTaskQueue).where(ETLTaskQueue.run_date == run_date),
            "DELETE"
        )
        logger.warning(f"Deleted {result.rowcount} queue entries for {run_date}")
        return await self.initialize_daily_queue(run_date, entity_keys)

    # ------------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------------

    async def next_batch(self, run_date: date, batch_size: Optional[int] = None) -> List[QueueEntryRead]:
        """
        Pending entries for the date, ordered by (batch_number, entity_key).

        Read-only: statuses are not changed until mark_processing is called.
        Entries are returned detached so later rollbacks cannot expire them.
        """
        limit = batch_size or self.batch_size
        query = (
            select(ETLTaskQueue)
            .where(
                ETLTaskQueue.run_date == run_date,
                ETLTaskQueue.status == QueueStatus.PENDING
            )
            .order_by(ETLTaskQueue.batch_number, ETLTaskQueue.entity_key)
            .limit(limit)
        )
        return await self._fetch_entries(query)

    async def mark_processing(self, run_date: date, entity_keys: Sequence[str]) -> int:
        """Claim pending entries; returns how many transitioned"""
        if not entity_keys:
            return 0
        return await self._transition(
            run_date,
            entity_keys,
            from_statuses=(QueueStatus.PENDING,),
            values={"status": QueueStatus.PROCESSING}
        )

    async def release(self, run_date: date, entity_keys: Sequence[str]) -> int:
        """Return claimed but unreached entries to pending"""
        if not entity_keys:
            return 0
        released = await self._transition(
            run_date,
            entity_keys,
            from_statuses=(QueueStatus.PROCESSING,),
            values={"status": QueueStatus.PENDING}
        )
        logger.info(f"Released {released} unprocessed entries back to pending")
        return released

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    async def mark_completed(self, entity_key: str, run_date: date) -> bool:
        now = self.clock()
        changed = await self._transition(
            run_date,
            [entity_key],
            from_statuses=ACTIVE_STATUSES,
            values={"status": QueueStatus.COMPLETED, "processed_at": now, "error_message": None}
        )
        if not changed:
            logger.warning(f"{entity_key}: no active queue entry for {run_date} to complete")
        return bool(changed)

    async def mark_failed(self, entity_key: str, run_date: date, message: str) -> bool:
        now = self.clock()
        changed = await self._transition(
            run_date,
            [entity_key],
            from_statuses=ACTIVE_STATUSES,
            values={"status": QueueStatus.FAILED, "processed_at": now, "error_message": message}
        )
        if not changed:
            logger.warning(f"{entity_key}: no active queue entry for {run_date} to fail")
        return bool(changed)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    async def reclaim_stale(self, run_date: date, older_than: timedelta) -> int:
        """Processing entries not touched within ``older_than`` go back to pending"""
        cutoff = self.clock() - older_than
        result = await self._execute(
            update(ETLTaskQueue)
            .where(
                ETLTaskQueue.run_date == run_date,
                ETLTaskQueue.status == QueueStatus.PROCESSING,
                ETLTaskQueue.updated_at < cutoff
            )
            .values(status=QueueStatus.PENDING, updated_at=self.clock())
            .execution_options(synchronize_session=False),
            "UPDATE"
        )
        if result.rowcount:
            logger.warning(f"Reclaimed {result.rowcount} stale processing entries for {run_date}")
        return result.rowcount

    async def reset_failed(self, run_date: date, entity_keys: Optional[Sequence[str]] = None) -> int:
        """Operator reset: failed entries become pending again"""
        criteria = [
            ETLTaskQueue.run_date == run_date,
            ETLTaskQueue.status == QueueStatus.FAILED,
        ]
        if entity_keys:
            criteria.append(ETLTaskQueue.entity_key.in_(list(entity_keys)))

        result = await self._execute(
            update(ETLTaskQueue)
            .where(*criteria)
            .values(
                status=QueueStatus.PENDING,
                error_message=None,
                processed_at=None,
                updated_at=self.clock()
            )
            .execution_options(synchronize_session=False),
            "UPDATE"
        )
        logger.info(f"Reset {result.rowcount} failed entries for {run_date}")
        return result.rowcount

    async def close_day(self, run_date: date, reason: str = MARKET_CLOSE_MESSAGE) -> int:
        """
        End-of-day close-out: every pending or processing entry becomes failed.

        The entries keep the reason as their error message, so an operator can
        still tell them apart from upstream failures and reset them if needed.

        Returns:
            Number of entries stopped
        """
        now = self.clock()
        result = await self._execute(
            update(ETLTaskQueue)
            .where(
                ETLTaskQueue.run_date == run_date,
                ETLTaskQueue.status.in_(list(ACTIVE_STATUSES))
            )
            .values(
                status=QueueStatus.FAILED,
                error_message=reason,
                processed_at=now,
                updated_at=now
            )
            .execution_options(synchronize_session=False),
            "UPDATE"
        )
        logger.warning(f"Closed queue for {run_date}: {result.rowcount} unfinished entries stopped")
        return result.rowcount

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_progress(self, run_date: date) -> QueueProgress:
        result = await self._execute(
            select(ETLTaskQueue.status, func.count())
            .where(ETLTaskQueue.run_date == run_date)
            .group_by(ETLTaskQueue.status),
            "SELECT"
        )

        progress = QueueProgress(run_date=run_date)
        for status, count in result.all():
            setattr(progress, QueueStatus(status).value, int(count))
            progress.total += int(count)
        return progress

    async def list_entries(
        self,
        run_date: date,
        status: Optional[QueueStatus] = None,
        limit: int = 100
    ) -> List[QueueEntryRead]:
        query = select(ETLTaskQueue).where(ETLTaskQueue.run_date == run_date)
        if status is not None:
            query = query.where(ETLTaskQueue.status == status)
        query = query.order_by(ETLTaskQueue.batch_number, ETLTaskQueue.entity_key).limit(limit)
        return await self._fetch_entries(query)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _transition(
        self,
        run_date: date,
        entity_keys: Sequence[str],
        from_statuses: Sequence[QueueStatus],
        values: Dict[str, object]
    ) -> int:
        stmt = (
            update(ETLTaskQueue)
            .where(
                ETLTaskQueue.run_date == run_date,
                ETLTaskQueue.entity_key.in_(list(entity_keys)),
                ETLTaskQueue.status.in_(list(from_statuses))
            )
            .values(updated_at=self.clock(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._execute(stmt, "UPDATE")
        return result.rowcount

    async def _fetch_entries(self, query) -> List[QueueEntryRead]:
        result = await self._execute(query.execution_options(populate_existing=True), "SELECT")
        return [QueueEntryRead.model_validate(row) for row in result.scalars().all()]

    async def _execute(self, stmt, operation: str, commit: Optional[bool] = None):
        """Run a statement, committing writes; wraps driver errors in QueueStateError"""
        if commit is None:
            commit = operation != "SELECT"
        try:
            result = await self.db.execute(stmt)
            if commit:
                await self.db.commit()
            return result
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise QueueStateError(
                f"Task queue {operation} failed",
                context={"operation": operation, "table_name": ETLTaskQueue.__tablename__},
                original_exception=e
            )

    async def _commit(self):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise QueueStateError(
                "Task queue commit failed",
                context={"table_name": ETLTaskQueue.__tablename__},
                original_exception=e
            )

    def _dialect_insert(self):
        """INSERT construct supporting ON CONFLICT for the bound dialect"""
        dialect = self.db.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite.insert
        return postgresql.insert
