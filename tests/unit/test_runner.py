"""
Unit tests for the batch runner and deadline policy
"""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select
from unittest.mock import AsyncMock

from core.exceptions import ETLException, QueueStateError
from ingestion.rate_limiter import RateLimiter
from ingestion.runner import BatchRunner, Deadline
from ingestion.transformers.field_mapping import SP500
from models.base import QueueStatus, RunStatus
from models.etl_run import ETLRun

RUN_DATE = date(2024, 1, 15)


class TestDeadline:

    def test_expiry(self, clock):
        deadline = Deadline(clock(), 1, clock=clock)

        assert not deadline.expired()
        assert deadline.remaining_seconds() == 60.0

        clock.advance(59)
        assert not deadline.expired()

        clock.advance(1)
        assert deadline.expired()
        assert deadline.remaining_seconds() == 0.0


class TestBatchRunner:

    def _runner(self, db_session, clock, providers, **kwargs):
        kwargs.setdefault("batch_size", 50)
        return BatchRunner(
            db_session,
            SP500,
            providers,
            clock=clock,
            sleep=clock.sleep,
            **kwargs
        )

    @pytest.mark.asyncio
    async def test_idle_when_nothing_pending(self, db_session, clock, make_provider):
        runner = self._runner(db_session, clock, [make_provider("finnhub_quote", {})])

        summary = await runner.run(RUN_DATE)

        assert summary.status == RunStatus.IDLE
        assert summary.initialized == 0
        assert summary.progress.total == 0

    @pytest.mark.asyncio
    async def test_one_batch_per_run(self, db_session, seed_stocks, clock, make_provider):
        tickers = [f"T{i:02d}" for i in range(5)]
        await seed_stocks(tickers)
        quote = make_provider("finnhub_quote", {t: {"last_price": 10.0} for t in tickers})
        runner = self._runner(db_session, clock, [quote], batch_size=2)

        summary = await runner.run(RUN_DATE)

        assert summary.status == RunStatus.COMPLETED
        assert summary.initialized == 5
        assert summary.batch.batch_number == 1
        assert summary.batch.claimed == ["T00", "T01"]
        assert (summary.progress.completed, summary.progress.pending) == (2, 3)
        assert quote.calls == ["T00", "T01"]

    @pytest.mark.asyncio
    async def test_rate_limit_delay_between_entities(self, db_session, seed_stocks, clock, make_provider):
        await seed_stocks(["AAA", "BBB", "CCC"])
        providers = [
            make_provider("finnhub_quote", {t: {"last_price": 1.0} for t in ["AAA", "BBB", "CCC"]}, 1.0),
            make_provider("polygon_prev_day", {}, 13.0),
        ]
        runner = self._runner(db_session, clock, providers)

        await runner.run(RUN_DATE)

        assert clock.sleeps == [13.0, 13.0]

    @pytest.mark.asyncio
    async def test_deadline_mid_batch_releases_rest(self, db_session, seed_stocks, clock, make_provider):
        tickers = [f"T{i:02d}" for i in range(50)]
        await seed_stocks(tickers)
        quote = make_provider("finnhub_quote", {t: {"last_price": 5.0} for t in tickers}, 6.0)
        runner = self._runner(db_session, clock, [quote], max_runtime_minutes=1)

        summary = await runner.run(RUN_DATE)

        assert summary.status == RunStatus.DEADLINE_REACHED
        assert summary.batch.deadline_reached
        assert len(summary.batch.outcomes) == 10
        assert summary.batch.released == tickers[10:]
        assert (summary.progress.completed, summary.progress.pending, summary.progress.processing) == (10, 40, 0)
        assert quote.calls == tickers[:10]

    @pytest.mark.asyncio
    async def test_deadline_before_claiming(self, db_session, seed_stocks, clock, make_provider):
        await seed_stocks(["AAA"])
        quote = make_provider("finnhub_quote", {"AAA": {"last_price": 5.0}})
        runner = self._runner(db_session, clock, [quote], max_runtime_minutes=0)

        summary = await runner.run(RUN_DATE)

        assert summary.status == RunStatus.DEADLINE_REACHED
        assert summary.batch is None
        assert summary.progress.pending == 1
        assert quote.calls == []

    @pytest.mark.asyncio
    async def test_stale_processing_reclaimed_at_start(self, db_session, seed_stocks, clock, make_provider):
        await seed_stocks(["AAA", "BBB"])
        quote = make_provider("finnhub_quote", {"AAA": {"last_price": 5.0}, "BBB": {"last_price": 6.0}})
        runner = self._runner(db_session, clock, [quote], lease_minutes=180)

        await runner.queue.ensure_queue_table()
        await runner.queue.initialize_daily_queue(RUN_DATE)
        await runner.queue.mark_processing(RUN_DATE, ["AAA", "BBB"])
        clock.advance(181 * 60)

        summary = await runner.run(RUN_DATE)

        assert summary.reclaimed == 2
        assert summary.progress.completed == 2

    @pytest.mark.asyncio
    async def test_run_ledger_recorded(self, db_session, seed_stocks, clock, make_provider):
        await seed_stocks(["AAA", "BBB"])
        quote = make_provider("finnhub_quote", {"AAA": {"last_price": 5.0}})
        runner = self._runner(db_session, clock, [quote])

        summary = await runner.run(RUN_DATE)

        result = await db_session.execute(select(ETLRun).execution_options(populate_existing=True))
        run = result.scalar_one()
        assert str(run.run_id) == summary.run_id
        assert run.status == RunStatus.COMPLETED
        assert (run.entities_claimed, run.entities_completed, run.entities_failed) == (2, 1, 1)
        assert run.config_snapshot["providers"] == ["finnhub_quote"]

    @pytest.mark.asyncio
    async def test_queue_failure_marks_run_failed(self, db_session, seed_stocks, clock, make_provider):
        await seed_stocks(["AAA"])
        runner = self._runner(db_session, clock, [make_provider("finnhub_quote", {"AAA": {"last_price": 5.0}})])
        runner.queue.next_batch = AsyncMock(side_effect=QueueStateError("Task queue SELECT failed"))

        with pytest.raises(ETLException):
            await runner.run(RUN_DATE)

        result = await db_session.execute(select(ETLRun).execution_options(populate_existing=True))
        run = result.scalar_one()
        assert run.status == RunStatus.FAILED
        assert run.error_message == "Task queue SELECT failed"

    @pytest.mark.asyncio
    async def test_explicit_rate_limiter(self, db_session, clock, make_provider):
        limiter = RateLimiter(0.5, sleep=clock.sleep)
        runner = self._runner(db_session, clock, [make_provider("finnhub_quote", {}, 13.0)], rate_limiter=limiter)

        assert runner.rate_limiter is limiter

    @pytest.mark.asyncio
    async def test_queue_error_mid_batch_releases_unprocessed(self, db_session, seed_stocks, clock, make_provider):
        tickers = ["AAA", "BBB", "CCC", "DDD"]
        await seed_stocks(tickers)
        quote = make_provider("finnhub_quote", {t: {"last_price": 5.0} for t in tickers})
        runner = self._runner(db_session, clock, [quote])

        mark_completed = runner.queue.mark_completed
        calls = []

        async def failing_second_completion(entity_key, run_date):
            calls.append(entity_key)
            if len(calls) == 2:
                raise QueueStateError("Task queue UPDATE failed")
            return await mark_completed(entity_key, run_date)

        runner.queue.mark_completed = failing_second_completion

        with pytest.raises(QueueStateError):
            await runner.run(RUN_DATE)

        entries = {e.entity_key: e.status for e in await runner.queue.list_entries(RUN_DATE)}
        assert entries == {
            "AAA": QueueStatus.COMPLETED,
            "BBB": QueueStatus.PENDING,
            "CCC": QueueStatus.PENDING,
            "DDD": QueueStatus.PENDING,
        }
        assert quote.calls == ["AAA", "BBB"]
