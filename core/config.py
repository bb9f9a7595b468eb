"""
Application configuration using Pydantic Settings
"""

from datetime import date
from typing import List, Optional

from pydantic_settings import BaseSettings

# Values shipped in .env.example that must never be treated as real credentials
PLACEHOLDER_MARKERS = ("username:password", "your_finnhub_api_key_here", "your_polygon_api_key_here")


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Database
    DATABASE_URL: Optional[str] = None

    # Providers
    FINNHUB_API_KEY: Optional[str] = None
    POLYGON_API_KEY: Optional[str] = None
    FINNHUB_BASE_URL: str = "https://finnhub.io/api/v1"
    POLYGON_BASE_URL: str = "https://api.polygon.io"
    FINNHUB_MIN_INTERVAL_SECONDS: float = 1.0
    POLYGON_MIN_INTERVAL_SECONDS: float = 13.0  # free tier: 5 requests/minute
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ETL Configuration
    ETL_MARKET: str = "sp500"
    ETL_BATCH_SIZE: int = 50
    ETL_MAX_RUNTIME_MINUTES: float = 160
    ETL_RUN_DATE: Optional[date] = None
    ETL_PROCESSING_LEASE_MINUTES: int = 180  # 0 disables reclaim

    # Periodic trigger
    ETL_SCHEDULER_ENABLED: bool = False
    ETL_SCHEDULE_INTERVAL_MINUTES: int = 15

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def polygon_enabled(self) -> bool:
        return not _is_missing(self.POLYGON_API_KEY)

    def missing_for_providers(self) -> List[str]:
        """Provider settings a run needs when a database session already exists."""
        return ["FINNHUB_API_KEY"] if _is_missing(self.FINNHUB_API_KEY) else []

    def missing_for_etl(self) -> List[str]:
        """Names of settings an ETL run cannot start without."""
        missing = []
        if _is_missing(self.DATABASE_URL):
            missing.append("DATABASE_URL")
        return missing + self.missing_for_providers()


def _is_missing(value: Optional[str]) -> bool:
    if not value or not value.strip():
        return True
    return any(marker in value for marker in PLACEHOLDER_MARKERS)


settings = Settings()
