"""
FastAPI dependencies
"""

from typing import AsyncIterator

import httpx
from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, settings


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Session from the Database opened at application startup"""
    database = getattr(request.app.state, "database", None)
    if database is None or not database.is_open:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not configured"
        )
    async with database.session() as session:
        yield session


def get_settings() -> Settings:
    return settings


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """Provider HTTP client scoped to one request"""
    async with httpx.AsyncClient() as client:
        yield client
