"""
Upstream market data providers.

Providers are listed in priority order: Finnhub is the primary source and
Polygon the optional fallback, enabled only when POLYGON_API_KEY is set.
"""

from typing import List

import httpx

from core.config import Settings
from ingestion.extractors.base import Provider
from ingestion.extractors.finnhub import FinnhubMetricsProvider, FinnhubQuoteProvider
from ingestion.extractors.polygon import PolygonPrevDayProvider
import logging

logger = logging.getLogger(__name__)

__all__ = [
    "Provider",
    "FinnhubQuoteProvider",
    "FinnhubMetricsProvider",
    "PolygonPrevDayProvider",
    "build_providers",
]


def build_providers(settings: Settings, client: httpx.AsyncClient) -> List[Provider]:
    """Active providers for the configured credentials, highest priority first"""
    common = {"client": client, "timeout": settings.HTTP_TIMEOUT_SECONDS}

    providers: List[Provider] = [
        FinnhubQuoteProvider(
            api_key=settings.FINNHUB_API_KEY,
            base_url=settings.FINNHUB_BASE_URL,
            min_interval_seconds=settings.FINNHUB_MIN_INTERVAL_SECONDS,
            **common
        ),
        FinnhubMetricsProvider(
            api_key=settings.FINNHUB_API_KEY,
            base_url=settings.FINNHUB_BASE_URL,
            min_interval_seconds=settings.FINNHUB_MIN_INTERVAL_SECONDS,
            **common
        ),
    ]

    if settings.polygon_enabled:
        providers.append(
            PolygonPrevDayProvider(
                api_key=settings.POLYGON_API_KEY,
                base_url=settings.POLYGON_BASE_URL,
                min_interval_seconds=settings.POLYGON_MIN_INTERVAL_SECONDS,
                **common
            )
        )
    else:
        logger.warning("POLYGON_API_KEY not set - Polygon data will be skipped")

    return providers
