"""
Static inter-entity delay between upstream fetches.

The delay is fixed for a run: the largest minimum interval among active
providers. No adaptive backoff on 429 responses.
"""

import asyncio
from typing import Awaitable, Callable, Iterable

import logging

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sleep a fixed amount between consecutive entities.

    Attributes:
        delay_seconds: Seconds to wait after each entity
    """

    def __init__(
        self,
        delay_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        if delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0, got {delay_seconds}")
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    @classmethod
    def for_providers(cls, providers: Iterable, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> "RateLimiter":
        """Use the strictest interval among the active providers"""
        intervals = [p.min_interval_seconds for p in providers]
        delay = max(intervals) if intervals else 0.0
        logger.info(f"Rate limiter: {delay:.1f}s between entities")
        return cls(delay, sleep=sleep)

    async def wait(self):
        if self.delay_seconds > 0:
            await self._sleep(self.delay_seconds)
