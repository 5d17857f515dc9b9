"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated, Any
from uuid import UUID

import redis.asyncio as aioredis
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Re-export auth dependencies for convenience
from healios.core.auth import (
    AdminUser,
    CurrentUser,
    OptionalUser,
    get_current_user,
    get_optional_user,
    require_admin,
)
from healios.core.config import settings
from healios.core.database import async_session_maker, get_async_session
from healios.services.cart_service import CartOwner
from healios.services.email_service import EmailService
from healios.services.reminder_scheduler import SweepState


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Alias for get_async_session."""
    async for session in get_async_session():
        yield session


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]

_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.redis_url), decode_responses=True
        )
    return _redis_pool


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a Redis client from the shared connection pool."""
    r = aioredis.Redis(connection_pool=_get_redis_pool())
    try:
        yield r
    finally:
        await r.aclose()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that opens its own sessions (the reminder sweep)."""
    return async_session_maker


def get_email_service() -> EmailService:
    return EmailService()


def get_sweep_state(request: Request) -> SweepState:
    """Sweep bookkeeping held on the application state."""
    state: SweepState = request.app.state.sweep_state
    return state


def customer_id_from(user: dict[str, Any]) -> UUID:
    """Customer ID from a verified token's ``sub`` claim."""
    try:
        return UUID(str(user.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token subject is not a customer id",
        )


async def get_cart_owner(
    user: OptionalUser,
    x_session_token: str | None = Header(default=None, min_length=8, max_length=255),
) -> CartOwner:
    """Resolve who is shopping: a signed-in customer, else the guest session."""
    if user is not None:
        return CartOwner(customer_id=customer_id_from(user))
    if x_session_token:
        return CartOwner(session_token=x_session_token)
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Sign in or send an X-Session-Token header",
    )


CartOwnerDep = Annotated[CartOwner, Depends(get_cart_owner)]
RedisClient = Annotated[aioredis.Redis, Depends(get_redis)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
EmailServiceDep = Annotated[EmailService, Depends(get_email_service)]
SweepStateDep = Annotated[SweepState, Depends(get_sweep_state)]


__all__ = [
    "AdminUser",
    "CartOwnerDep",
    "CurrentUser",
    "DBSession",
    "EmailServiceDep",
    "OptionalUser",
    "RedisClient",
    "SessionFactory",
    "SweepStateDep",
    "customer_id_from",
    "get_cart_owner",
    "get_current_user",
    "get_db",
    "get_email_service",
    "get_optional_user",
    "get_redis",
    "get_session_factory",
    "get_sweep_state",
    "require_admin",
]
