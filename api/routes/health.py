"""
Health check and monitoring endpoints.
"""

import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.routes.jobs import get_service
from api.services.chronicle_service import ChronicleService
from config.settings import settings
from core.chronicle.models import HealthStatus

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "timestamp": time.time()
    }


@router.get("/health/jobs")
async def job_health_check(service: ChronicleService = Depends(get_service)):
    """
    Stuck-job health.

    healthy: nothing stuck
    degraded: stuck jobs waiting for the next auto-resume sweep
    critical (503): stuck jobs nobody has resumed for several sweeps
    """
    report = service.health()
    status_code = 503 if report.status == HealthStatus.CRITICAL else 200
    return JSONResponse(status_code=status_code, content=report.to_dict())
