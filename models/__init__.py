"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (QueueStatus, RunStatus)
    task_queue: Per-date task queue entries, one per ticker
    stock: Target records updated by the ETL (stocks, chinese_stocks)
    etl_run: Per-invocation run ledger

Usage:
    from models.task_queue import ETLTaskQueue
    from models.base import QueueStatus

Example:
    entry = ETLTaskQueue(
        entity_key="AAPL",
        run_date=date(2024, 1, 15),
        batch_number=1,
        status=QueueStatus.PENDING
    )
    session.add(entry)
    await session.commit()
"""

__all__ = [
    "Base",
    "QueueStatus",
    "RunStatus",
    "ETLTaskQueue",
    "Stock",
    "ChineseStock",
    "ETLRun",
]
