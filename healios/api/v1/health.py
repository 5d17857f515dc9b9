"""Health check endpoints."""

import logging

from fastapi import APIRouter
from sqlalchemy import text

from healios.core.config import settings
from healios.core.deps import DBSession, RedisClient, SweepStateDep
from healios.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: DBSession,
    redis: RedisClient,
    sweep_state: SweepStateDep,
) -> HealthResponse:
    """
    Health check endpoint.

    Checks database and Redis (Celery broker) connectivity and reports when
    the reminder sweep last ran in this process.
    """
    checks: dict[str, str] = {}
    healthy = True

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        healthy = False
        checks["database"] = f"unhealthy: {e}"

    try:
        await redis.ping()
        checks["redis"] = "healthy"
    except Exception as e:
        logger.warning("Redis health check failed: %s", e)
        healthy = False
        checks["redis"] = f"unhealthy: {e}"

    last_run = sweep_state.last_run_at
    checks["reminder_sweep"] = last_run.isoformat() if last_run else "not run"

    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=settings.version,
        environment=settings.environment,
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Liveness probe: the process is up."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(db: DBSession) -> dict[str, str]:
    """Readiness probe: the database answers."""
    await db.execute(text("SELECT 1"))
    return {"status": "ready"}
