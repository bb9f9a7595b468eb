"""
Bounded-batch ETL components for stock market data.

This package contains everything one run needs:

Modules:
    queue: Daily task queue (initialization, claiming, status transitions)
    worker: Per-entity fetch, merge, update and terminal status
    runner: Batch orchestrator with wall-clock deadline and run ledger
    rate_limiter: Static delay between entities
    scheduler: APScheduler integration for periodic runs

Subpackages:
    extractors: Upstream providers (Finnhub quote/metrics, Polygon previous day)
    transformers: Field merging and per-market column mapping
    loaders: Coalescing partial updates of target records

Architecture:
    Each invocation works on one batch of the day's queue:

    1. Initialize - create today's queue once, partitioned into batches
    2. Claim - take the next pending batch and mark it processing
    3. Process - for each entity: fetch from all providers, merge, update
    4. Stop - at the end of the batch or at the deadline, whichever is first

    Unfinished entities stay pending for the next invocation.

Usage:
    from ingestion.runner import BatchRunner, run_once
    from ingestion.queue import TaskQueue

Example:
    summary = await run_once(settings, market="sp500")
    print(f"{summary.status.value}: {summary.progress.completed} completed")

Error Handling:
    Provider failures are converted to failed ProviderResults, entity failures
    are recorded on the queue entry, and only configuration or queue-state
    errors abort a run. See core.exceptions.
"""

__all__ = [
    "TaskQueue",
    "EntityWorker",
    "BatchRunner",
    "Deadline",
    "RateLimiter",
    "ETLScheduler",
    "run_once",
]
