from typing import AsyncGenerator, Optional

from fastapi import Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from delivery_backend.app.core.database import async_session
from delivery_backend.app.core.exceptions import ServiceError
from delivery_backend.app.core.settings import get_settings
from delivery_backend.app.services.cache import CacheService


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


def get_session_factory() -> async_sessionmaker:
    """Factory for work that needs one session per unit (batch revalidation)."""
    return async_session


async def get_cache() -> AsyncGenerator[CacheService, None]:
    redis = await CacheService.get_redis()
    yield CacheService(redis)


async def require_admin_token(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")):
    secret = get_settings().ADMIN_SECRET
    if not secret:
        raise HTTPException(status_code=503, detail="Admin API not configured (ADMIN_SECRET missing)")
    if not x_admin_token or x_admin_token != secret:
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")


def handle_service_error(e: ServiceError):
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)
