"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import date, datetime
from uuid import UUID

from models.base import RunStatus
from schemas.queue import QueueProgress


# ============================================================================
# Queue Schemas
# ============================================================================

class QueueProgressResponse(BaseModel):
    """Counts per status plus derived rates for one run date"""
    run_date: date
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0
    success_rate: float = Field(0.0, ge=0, le=100, description="Completed / (completed + failed), percent")
    completion_rate: float = Field(0.0, ge=0, le=100, description="Completed / total, percent")
    is_drained: bool = False

    @classmethod
    def from_progress(cls, progress: QueueProgress) -> "QueueProgressResponse":
        return cls(
            run_date=progress.run_date,
            pending=progress.pending,
            processing=progress.processing,
            completed=progress.completed,
            failed=progress.failed,
            total=progress.total,
            success_rate=progress.success_rate,
            completion_rate=progress.completion_rate,
            is_drained=progress.is_drained,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "run_date": "2024-01-15",
                "pending": 400,
                "processing": 0,
                "completed": 95,
                "failed": 5,
                "total": 500,
                "success_rate": 95.0,
                "completion_rate": 19.0,
                "is_drained": False
            }
        }


class ResetFailedRequest(BaseModel):
    """Operator reset of failed entries"""
    run_date: date
    entity_keys: Optional[List[str]] = Field(None, description="Limit the reset to these keys")

    @validator("entity_keys")
    def strip_keys(cls, v):
        if v is None:
            return v
        keys = [k.strip() for k in v if k and k.strip()]
        if not keys:
            raise ValueError("entity_keys must contain at least one non-empty key")
        return keys


class ReclaimRequest(BaseModel):
    """Return stale processing entries to pending"""
    run_date: date
    older_than_minutes: Optional[int] = Field(
        None, ge=0, description="Defaults to ETL_PROCESSING_LEASE_MINUTES"
    )


class ResetQueueRequest(BaseModel):
    """Delete and rebuild one date's queue"""
    run_date: date
    market: Optional[str] = Field(None, description="Market profile; defaults to ETL_MARKET")


class StopQueueRequest(BaseModel):
    """End-of-day close-out"""
    run_date: Optional[date] = Field(None, description="Defaults to today, UTC")


class StopQueueResponse(BaseModel):
    """Entries stopped plus the day's final counts"""
    run_date: date
    stopped: int
    progress: QueueProgressResponse


class QueueActionResponse(BaseModel):
    """Result of an operator action on the queue"""
    run_date: date
    action: str
    affected: int


# ============================================================================
# Run Schemas
# ============================================================================

class ETLRunResponse(BaseModel):
    run_id: UUID
    market: str
    run_date: date
    status: RunStatus
    started_at: datetime
    deadline_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    batch_number: Optional[int] = None
    entities_claimed: int = 0
    entities_completed: int = 0
    entities_failed: int = 0
    entities_released: int = 0
    entities_reclaimed: int = 0
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class RunRequest(BaseModel):
    """Trigger one bounded batch run from the API"""
    market: Optional[str] = Field(None, description="Market profile; defaults to ETL_MARKET")
    run_date: Optional[date] = Field(None, description="Defaults to ETL_RUN_DATE or today, UTC")
    batch_size: Optional[int] = Field(None, ge=1)
    max_runtime_minutes: Optional[float] = Field(None, ge=0)


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    queue: Optional[QueueProgressResponse] = None
    last_run: Optional[ETLRunResponse] = None
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"

        last_run = values.get("last_run")
        if last_run is not None and last_run.status == RunStatus.FAILED.value:
            return "degraded"

        return "healthy"


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Queue operation failed",
                "detail": "Task queue SELECT failed",
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }
