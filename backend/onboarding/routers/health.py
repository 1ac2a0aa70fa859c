"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from onboarding.config import settings
from onboarding.deps import get_backend_client
from onboarding.middleware.exceptions import BoundaryError
from onboarding.services.api_client import BackendClient
from onboarding.utils.connections import ping_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no Redis/backend check)."""
    return {
        "status": "ok",
        "service": "onboarding",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(client: BackendClient = Depends(get_backend_client)):
    """Readiness check (Redis + onboarding backend).

    Returns 200 OK only if all dependencies are healthy.
    """
    checks = {
        "service": "ok",
        "redis": "unknown",
        "backend": "unknown",
    }

    checks["redis"] = "ok" if await ping_redis() else "error"

    try:
        await client.health_check()
        checks["backend"] = "ok"
    except BoundaryError as e:
        checks["backend"] = f"error: {e.message[:100]}"

    overall_healthy = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "onboarding",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
