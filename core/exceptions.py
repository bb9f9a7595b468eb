"""
Custom exceptions for the batch ETL with structured error context.

Each exception carries a context dictionary for logging. Provider errors
never escape a provider: they are converted into a failed ProviderResult.
Entity-level errors mark a single queue entry as failed. Only configuration
errors and queue-state errors abort a run.

Exception Hierarchy:
    ETLException (base)
    ├── ConfigurationError
    ├── ProviderError
    │   ├── ProviderAuthenticationError
    │   ├── ProviderNotFoundError
    │   ├── ProviderRateLimitError
    │   ├── ProviderUnavailableError
    │   ├── ProviderNetworkError
    │   └── MalformedPayloadError
    ├── EntityValidationError
    │   └── InvalidUpstreamDataError
    └── PersistenceError
        ├── TargetUpdateError
        └── QueueStateError
"""

from typing import Optional, Dict, Any
from datetime import datetime


class ETLException(Exception):
    """
    Base exception for all ETL-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (entity, provider, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


class ConfigurationError(ETLException):
    """Required configuration is missing or invalid. Fatal before any queue access."""
    pass


# ============================================================================
# Provider Errors
# ============================================================================

class ProviderError(ETLException):
    """
    Base exception for upstream data provider failures.

    Context should include:
        - provider: Provider name
        - entity_key: Ticker being fetched
        - status_code: HTTP status code (if applicable)
    """

    error_kind = "provider_error"


class ProviderAuthenticationError(ProviderError):
    """HTTP 401/403 from the provider."""
    error_kind = "authentication"


class ProviderNotFoundError(ProviderError):
    """HTTP 404 or an empty result set for the entity."""
    error_kind = "not_found"


class ProviderRateLimitError(ProviderError):
    """HTTP 429. Treated as an ordinary failure; no global slowdown."""

    error_kind = "rate_limited"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class ProviderUnavailableError(ProviderError):
    """HTTP 5xx or any other unexpected status."""
    error_kind = "upstream_unavailable"


class ProviderNetworkError(ProviderError):
    """Timeouts and transport failures."""
    error_kind = "network"


class MalformedPayloadError(ProviderError):
    """Response body could not be decoded or carries an error field."""
    error_kind = "malformed_payload"


# ============================================================================
# Entity Errors
# ============================================================================

class EntityValidationError(ETLException):
    """Merged data for an entity failed validation."""

    error_kind = "validation"


class InvalidUpstreamDataError(EntityValidationError):
    """
    No provider produced a usable primary value (e.g. price is zero/missing).

    Context should include:
        - entity_key: Ticker
        - provider_errors: Mapping of provider name to error message
    """

    error_kind = "invalid_upstream_data"


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(ETLException):
    """
    Base exception for database failures.

    Context should include:
        - operation: Type of database operation (INSERT, UPDATE, SELECT)
        - table_name: Name of the table
    """

    error_kind = "persistence"


class TargetUpdateError(PersistenceError):
    """Partial update of a target record failed. Marks the entity failed."""
    error_kind = "persistence"


class QueueStateError(PersistenceError):
    """Reading or transitioning queue entries failed. Aborts the run."""
    error_kind = "queue_state"
