from sqlalchemy import Column, BigInteger, String, Date, DateTime, Float, Integer, Text, Index, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
import uuid
from models.base import Base, RunStatus, string_enum


class ETLRun(Base):
    """
    Tracks metadata for each bounded ETL invocation.

    Purpose:
    - Audit trail of all runs against the task queue
    - Per-run counts for operators (claimed, completed, failed, released)
    - Distinguish deadline stops from normal completion
    """
    __tablename__ = "etl_runs"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    run_id = Column(Uuid(as_uuid=True), default=uuid.uuid4, unique=True, nullable=False, index=True)

    market = Column(String(50), nullable=False, index=True)
    run_date = Column(Date, nullable=False, index=True)

    status = Column(string_enum(RunStatus), default=RunStatus.RUNNING, nullable=False, index=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    deadline_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    batch_number = Column(Integer, nullable=True)
    entities_claimed = Column(Integer, default=0)
    entities_completed = Column(Integer, default=0)
    entities_failed = Column(Integer, default=0)
    entities_released = Column(Integer, default=0)
    entities_reclaimed = Column(Integer, default=0)

    # Error tracking
    error_message = Column(Text, nullable=True)

    # Configuration snapshot
    config_snapshot = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    __table_args__ = (
        Index("idx_etl_run_market_started", "market", "started_at"),
    )
