"""
Core utilities and configuration for the stock batch ETL.

Modules:
    config: Application configuration and environment variable management
    database: Explicit persistence handle (open/close) around an async engine
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import Database
    from core.exceptions import ConfigurationError, ProviderError
    from core.logging import setup_logging

Example:
    setup_logging()

    async with Database(settings.DATABASE_URL) as db:
        async with db.session() as session:
            pass
"""

__all__ = [
    "settings",
    "Database",
    "setup_logging",
    # Exceptions
    "ETLException",
    "ConfigurationError",
    "ProviderError",
    "ProviderAuthenticationError",
    "ProviderNotFoundError",
    "ProviderRateLimitError",
    "ProviderUnavailableError",
    "ProviderNetworkError",
    "MalformedPayloadError",
    "EntityValidationError",
    "InvalidUpstreamDataError",
    "PersistenceError",
    "TargetUpdateError",
    "QueueStateError",
]
