from sqlalchemy import Column, Integer, String, Date, DateTime, Text, Index, UniqueConstraint
from datetime import datetime
from models.base import Base, QueueStatus, string_enum


class ETLTaskQueue(Base):
    """
    One row per (entity key, run date).

    Purpose:
    - Checkpoint progress between independently scheduled, time-limited runs
    - Partition the day's entities into numbered batches
    - Record per-entity outcome and failure reason

    Design:
    - A new generation of rows is created once per run date, never reused
    - batch_number is assigned at initialization in entity key order
    - status moves pending -> processing -> completed | failed
    """
    __tablename__ = "etl_task_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)

    entity_key = Column(String(20), nullable=False)
    run_date = Column(Date, nullable=False)
    batch_number = Column(Integer, nullable=False, default=1)

    status = Column(string_enum(QueueStatus), nullable=False, default=QueueStatus.PENDING)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("entity_key", "run_date", name="uq_etl_task_queue_entity_date"),
        Index("idx_etl_task_queue_status_date", "status", "run_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<ETLTaskQueue {self.entity_key} {self.run_date} "
            f"batch={self.batch_number} status={self.status}>"
        )
