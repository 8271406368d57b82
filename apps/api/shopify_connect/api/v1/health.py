"""Health check endpoints."""

from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy import text

from shopify_connect.core.config import settings
from shopify_connect.core.deps import DBSession, get_redis
from shopify_connect.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    db: DBSession,
    r: aioredis.Redis = Depends(get_redis),
) -> HealthResponse:
    """
    Health check endpoint.

    Checks database and Redis connectivity and returns service status.
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "version": settings.version,
        "environment": settings.environment,
        "checks": {},
    }

    # Check database connection
    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"

    # Check Redis connection (OAuth nonces live here)
    try:
        await r.ping()
        health_status["checks"]["redis"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["redis"] = f"unhealthy: {str(e)}"

    return HealthResponse(**health_status)


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Liveness probe. Simple check that the service is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(db: DBSession) -> dict[str, str]:
    """Readiness probe. Checks if the service is ready to receive traffic."""
    await db.execute(text("SELECT 1"))

    return {"status": "ready"}
