"""Health check router for the LLM relay."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from services import HealthMetricsService
from utils import create_contextual_logger

router = APIRouter(prefix="/health", tags=["health"])
logger = create_contextual_logger(__name__, service="health_router")


def get_health_service(request: Request) -> HealthMetricsService:
    """Dependency to get health service from application state."""
    return request.app.state.health_metrics  # type: ignore[no-any-return]


def _unhealthy(error: Exception) -> Dict[str, Any]:
    return {
        "status": "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "unknown",
        "uptime_seconds": 0,
        "redis_connected": False,
        "components": {
            "health_service": {"status": "unhealthy", "error": str(error)}
        },
    }


@router.get("/", response_model=Dict[str, Any])
async def health_check(
    health_service: HealthMetricsService = Depends(get_health_service),
) -> Dict[str, Any]:
    """Get application health status."""
    try:
        return await health_service.get_health_status()
    except Exception as e:
        logger.error("Health check failed", error=str(e), endpoint="/health/")
        # Report unhealthy instead of failing the probe
        return _unhealthy(e)


@router.get("/detailed", response_model=Dict[str, Any])
async def detailed_health_check(
    health_service: HealthMetricsService = Depends(get_health_service),
) -> Dict[str, Any]:
    """Get detailed health status with relay metrics."""
    try:
        health_status = await health_service.get_health_status()
        metrics_data = await health_service.get_metrics_data()
        return {**health_status, "metrics": metrics_data}
    except Exception as e:
        logger.error("Detailed health check failed", error=str(e), endpoint="/health/detailed")
        return {
            **_unhealthy(e),
            "metrics": {"error": "Failed to retrieve metrics data", "details": str(e)},
        }
