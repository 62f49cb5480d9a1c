"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from backoffice.config import settings
from backoffice.database import engine
from backoffice.utils.cache import get_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no DB/Redis check).

    Returns 200 OK if the service is running.
    """
    return {
        "status": "ok",
        "service": "SVS Back-Office",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness check (database, and Redis when caching is enabled).

    Returns 200 OK only if all dependencies are healthy.
    """
    checks = {
        "service": "ok",
        "database": "unknown",
        "redis": "disabled",
    }
    overall_healthy = True

    # Check database connection
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {str(e)[:100]}"
        overall_healthy = False

    # Check Redis connection
    if settings.cache_enabled:
        try:
            redis_client = await get_redis()
            await redis_client.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {str(e)[:100]}"
            overall_healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "SVS Back-Office",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
