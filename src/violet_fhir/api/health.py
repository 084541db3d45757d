"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, Response, status

from violet_fhir.core.exceptions import StorageError
from violet_fhir.utils.logging import get_logger

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


@router.get("/health")
def health_check(request: Request) -> Dict[str, Any]:
    """Check basic service health."""
    settings = request.app.state.settings
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/health/ready")
def readiness_check(request: Request, response: Response) -> Dict[str, Any]:
    """Check that the storage backend answers."""
    checks = {"storage": False}
    try:
        request.app.state.registry.find_all()
        checks["storage"] = True
    except StorageError as e:
        logger.error("Storage check failed: %s", e, exc_info=True)

    ready = all(checks.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "ready" if ready else "unavailable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
