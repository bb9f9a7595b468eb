"""
Pydantic schemas for typed stage results and API models.

Schemas:
    queue: Results passed between queue, worker and runner
           (ProviderResult, EntityOutcome, BatchResult, QueueProgress, RunSummary)
    api: API endpoint request/response schemas

Usage:
    from schemas.queue import EntityOutcome, RunSummary
    from schemas.api import QueueProgressResponse

Example:
    outcome = EntityOutcome(entity_key="AAPL", status=QueueStatus.COMPLETED)
    assert outcome.succeeded
"""

__all__ = [
    "ErrorKind",
    "ProviderResult",
    "EntityOutcome",
    "QueueProgress",
    "BatchResult",
    "RunSummary",
    "QueueEntryRead",
    "QueueProgressResponse",
    "ETLRunResponse",
    "HealthCheckResponse",
]
