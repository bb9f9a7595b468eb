import pytest
from unittest.mock import AsyncMock, Mock

from ingestion.rate_limiter import RateLimiter


def _provider(interval):
    return Mock(min_interval_seconds=interval)


def test_delay_uses_strictest_provider():
    limiter = RateLimiter.for_providers([_provider(1.0), _provider(1.0), _provider(13.0)])
    assert limiter.delay_seconds == 13.0


def test_delay_without_polygon():
    limiter = RateLimiter.for_providers([_provider(1.0), _provider(1.0)])
    assert limiter.delay_seconds == 1.0


def test_negative_delay_rejected():
    with pytest.raises(ValueError):
        RateLimiter(-1)


@pytest.mark.asyncio
async def test_wait_sleeps_fixed_delay():
    sleep = AsyncMock()
    limiter = RateLimiter(13.0, sleep=sleep)

    await limiter.wait()
    await limiter.wait()

    assert sleep.await_count == 2
    sleep.assert_awaited_with(13.0)


@pytest.mark.asyncio
async def test_zero_delay_does_not_sleep():
    sleep = AsyncMock()

    await RateLimiter.for_providers([], sleep=sleep).wait()

    sleep.assert_not_awaited()
