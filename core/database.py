"""
Database session management with SQLAlchemy async
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from core.exceptions import ConfigurationError
import logging

logger = logging.getLogger(__name__)


class Database:
    """
    Persistence handle scoped to one process run.

    The engine is created by ``open()`` and disposed by ``close()``; nothing
    is shared through module state.

    Example:
        async with Database(settings.DATABASE_URL) as db:
            async with db.session() as session:
                ...
    """

    def __init__(self, url: Optional[str], echo: bool = False, **engine_kwargs):
        if not url:
            raise ConfigurationError(
                "Database URL is not configured",
                context={"setting": "DATABASE_URL"}
            )
        self.url = url
        self.echo = echo
        self.engine_kwargs = engine_kwargs
        self.engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker] = None

    async def open(self) -> "Database":
        if self.engine is not None:
            return self

        kwargs = dict(self.engine_kwargs)
        if not self.url.startswith("sqlite"):
            kwargs.setdefault("poolclass", NullPool)

        self.engine = create_async_engine(self.url, echo=self.echo, future=True, **kwargs)
        self._session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False
        )
        logger.info(f"Database opened ({_redact(self.url)})")
        return self

    async def close(self):
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self._session_maker = None
        logger.info("Database closed")

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._session_maker is None:
            raise RuntimeError("Database is not open")
        async with self._session_maker() as session:
            yield session

    async def __aenter__(self) -> "Database":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


def _redact(url: str) -> str:
    """Hide credentials in log output"""
    return url.split("@", 1)[1] if "@" in url else url.split("://", 1)[0]
