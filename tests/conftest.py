"""
Pytest configuration and fixtures
"""

import os
from datetime import date, datetime, timedelta
from typing import AsyncGenerator, Dict, Iterable, Union

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from ingestion.extractors.base import Provider
from models.base import Base
# Import all models to ensure they are registered
from models.etl_run import ETLRun
from models.stock import ChineseStock, Stock
from models.task_queue import ETLTaskQueue

# Test database URL; point at a throwaway Postgres database to run against asyncpg
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite://")

RUN_DATE = date(2024, 1, 15)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection so the in-memory database survives across sessions
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=NullPool,  # Disable connection pooling for tests
        )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def seed_stocks(db_session):
    """Insert target rows; returns an async callable taking tickers"""

    async def _seed(tickers: Iterable[str], model=Stock, **columns):
        for ticker in tickers:
            db_session.add(model(ticker=ticker, **columns))
        await db_session.commit()

    return _seed


# ============================================================================
# Time
# ============================================================================

class FakeClock:
    """Deterministic clock; sleeping advances time instead of waiting"""

    def __init__(self, start: datetime):
        self.now = start
        self.sleeps = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.advance(seconds)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 15, 9, 30))


# ============================================================================
# Providers
# ============================================================================

class StubProvider(Provider):
    """Provider answering from a dict: entity key -> fields or exception"""

    def __init__(
        self,
        name: str,
        responses: Dict[str, Union[Dict, Exception]],
        min_interval_seconds: float = 0.0
    ):
        super().__init__(
            client=None,
            api_key="test_key",
            base_url="http://stub.test",
            min_interval_seconds=min_interval_seconds
        )
        self.name = name
        self.responses = responses
        self.calls = []

    async def fetch_fields(self, entity_key: str):
        self.calls.append(entity_key)
        response = self.responses.get(entity_key, {})
        if isinstance(response, Exception):
            raise response
        return dict(response)


@pytest.fixture
def make_provider():
    """Factory for stub providers"""
    return StubProvider
