"""
Health check and metrics endpoints.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ...core.config import Settings
from ...monitoring.metrics import render_latest
from ..dependencies import get_app_settings

# Track process start time for uptime calculation
PROCESS_START_TIME = time.time()

logger = structlog.get_logger()
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(settings: Settings = Depends(get_app_settings)) -> Dict[str, Any]:
    """Basic liveness probe for load balancers."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "environment": settings.ENVIRONMENT,
        "uptime_seconds": round(time.time() - PROCESS_START_TIME, 3),
    }


@router.get("/health/ready")
async def readiness_check(request: Request) -> Dict[str, Any]:
    """
    Readiness probe.

    Verifies the key-value store answers and reports cache and batch state.
    """
    state = request.app.state
    try:
        await state.store.get("health:probe")
    except Exception as e:
        logger.warning("Readiness check failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Key-value store unavailable: {e}",
        )

    return {
        "status": "ready",
        "storage": state.settings.STORAGE_BACKEND,
        "api_cache": state.api_cache.stats(),
        "dangling_batch_operations": state.batch_service.controller.dangling_count(),
    }


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=render_latest(), media_type="text/plain; version=0.0.4")
