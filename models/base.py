from sqlalchemy import Enum
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class QueueStatus(str, enum.Enum):
    """Task queue entry status"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStatus(str, enum.Enum):
    """ETL run status"""
    RUNNING = "running"
    COMPLETED = "completed"
    DEADLINE_REACHED = "deadline_reached"
    IDLE = "idle"
    FAILED = "failed"


def string_enum(enum_cls, length: int = 20) -> Enum:
    """Store enum values (not member names) in a plain VARCHAR column"""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        validate_strings=True,
        length=length,
    )
