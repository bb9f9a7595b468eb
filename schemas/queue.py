"""
Typed results passed between queue, worker and runner stages
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import date, datetime
import enum

from models.base import QueueStatus, RunStatus


class ErrorKind(str, enum.Enum):
    """Why a provider call or an entity failed"""
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    NETWORK = "network"
    MALFORMED_PAYLOAD = "malformed_payload"
    PROVIDER_ERROR = "provider_error"
    INVALID_UPSTREAM_DATA = "invalid_upstream_data"
    VALIDATION = "validation"
    PERSISTENCE = "persistence"
    UNEXPECTED = "unexpected"


class ProviderResult(BaseModel):
    """Outcome of one provider call for one entity"""
    provider: str
    entity_key: str
    ok: bool
    fields: Dict[str, Any] = Field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @classmethod
    def success(cls, provider: str, entity_key: str, fields: Dict[str, Any]) -> "ProviderResult":
        return cls(provider=provider, entity_key=entity_key, ok=True, fields=fields)

    @classmethod
    def failure(cls, provider: str, entity_key: str, kind: ErrorKind, message: str) -> "ProviderResult":
        return cls(
            provider=provider,
            entity_key=entity_key,
            ok=False,
            error_kind=kind,
            error_message=message
        )


class EntityOutcome(BaseModel):
    """Terminal result for one queue entry"""
    entity_key: str
    status: QueueStatus
    fields_updated: List[str] = Field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    provider_errors: Dict[str, str] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == QueueStatus.COMPLETED


class QueueProgress(BaseModel):
    """Counts per status for one run date"""
    run_date: date
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0

    @property
    def success_rate(self) -> float:
        """Percentage of terminal entries that completed"""
        finished = self.completed + self.failed
        return round(self.completed / finished * 100, 1) if finished else 0.0

    @property
    def completion_rate(self) -> float:
        """Percentage of all entries that completed"""
        return round(self.completed / self.total * 100, 1) if self.total else 0.0

    @property
    def is_drained(self) -> bool:
        return self.total > 0 and self.pending == 0 and self.processing == 0


class BatchResult(BaseModel):
    """What happened to one claimed batch"""
    batch_number: Optional[int] = None
    claimed: List[str] = Field(default_factory=list)
    outcomes: List[EntityOutcome] = Field(default_factory=list)
    released: List[str] = Field(default_factory=list)
    deadline_reached: bool = False

    @property
    def completed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == QueueStatus.COMPLETED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == QueueStatus.FAILED)

    @property
    def success_rate(self) -> float:
        return round(self.completed / len(self.claimed) * 100, 1) if self.claimed else 0.0


class RunSummary(BaseModel):
    """Returned by BatchRunner.run and logged at the end of every invocation"""
    run_id: Optional[str] = None
    market: str
    run_date: date
    status: RunStatus
    started_at: datetime
    deadline_at: datetime
    completed_at: Optional[datetime] = None
    initialized: int = 0
    reclaimed: int = 0
    batch: Optional[BatchResult] = None
    progress: Optional[QueueProgress] = None
    error_message: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


class QueueEntryRead(BaseModel):
    """Queue row as exposed by the operator API"""
    entity_key: str
    run_date: date
    batch_number: int
    status: QueueStatus
    created_at: datetime
    updated_at: datetime
    processed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
