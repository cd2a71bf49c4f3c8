"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter
from sqlalchemy import text

from consent_api.core.config import settings
from consent_api.core.deps import DBSession

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: DBSession) -> dict[str, Any]:
    """
    Health check endpoint.

    Checks database and broker connectivity and returns service status.
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "version": settings.version,
        "environment": settings.environment,
        "checks": {},
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"unhealthy: {type(e).__name__}"

    # Celery broker
    try:
        import redis.asyncio as redis

        redis_client = redis.from_url(str(settings.redis_url))  # type: ignore[no-untyped-call]
        await redis_client.ping()
        await redis_client.aclose()
        health_status["checks"]["redis"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["redis"] = f"unhealthy: {type(e).__name__}"

    return health_status


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Liveness probe: the process is up."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(db: DBSession) -> dict[str, str]:
    """Readiness probe: the database answers."""
    await db.execute(text("SELECT 1"))
    return {"status": "ready"}
