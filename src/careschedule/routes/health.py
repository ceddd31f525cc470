"""
Health Check Routes

Endpoints for service health monitoring.
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from datetime import datetime, timezone

from ..services.engine_service import get_engine_service

router = APIRouter(prefix="/health", tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
@router.get("/")
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": "careschedule",
        "timestamp": _now()
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - indicates if service is ready to handle requests.
    Used by Kubernetes/orchestrators for readiness probes.
    """
    engine = get_engine_service()
    database = await engine.occurrence_storage.ping()
    body = {
        "ready": database,
        "database": database,
        "overdue_monitor": engine.overdue_monitor.is_running,
        "timestamp": _now()
    }
    return JSONResponse(body, status_code=200 if database else 503)


@router.get("/live")
async def liveness_check():
    """
    Liveness check - indicates if service is running.
    Used by Kubernetes/orchestrators for liveness probes.
    """
    return {
        "alive": True,
        "timestamp": _now()
    }
