"""Health and Queue Status Endpoints.

Endpoints:
- GET /health - Service health with queue statistics and uptime
- GET /health/queue - Queue depth, active and waiting entries
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from pydantic import BaseModel, Field

from jobforge.api.deps import get_service
from jobforge.core.jobs.service import JobService

SERVICE_NAME = "jobforge-processing-service"

# =============================================================================
# RESPONSE MODELS
# =============================================================================


class HealthData(BaseModel):
    """Service health summary."""

    status: str = Field(..., description="healthy or unhealthy")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Application version")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    uptimeSeconds: float = Field(default=0.0, description="Process uptime in seconds")
    workersRunning: bool = Field(default=False, description="Whether the worker pool runs")
    queue: Optional[Dict[str, Any]] = Field(default=None, description="Stats snapshot")
    error: Optional[str] = Field(default=None, description="Error message if unhealthy")


class QueueHealthData(BaseModel):
    """Queue health summary."""

    status: str = Field(..., description="healthy or unhealthy")
    stats: Dict[str, Any] = Field(default_factory=dict, description="Stats snapshot")
    activeJobs: int = Field(default=0, description="Entries currently leased")
    waitingJobs: int = Field(default=0, description="Ready and delayed entries")
    paused: bool = Field(default=False, description="Whether claims are paused")
    timestamp: str = Field(..., description="ISO 8601 timestamp")


class HealthResponse(BaseModel):
    success: bool = Field(..., description="Always true; see data.status")
    data: HealthData


class QueueHealthResponse(BaseModel):
    success: bool = Field(..., description="Always true; see data.status")
    data: QueueHealthData


# =============================================================================
# LAZY IMPORTS
# =============================================================================


class _LazyDeps:
    """Lazy loader for router and logger."""

    _router = None
    _logger = None

    @classmethod
    def get_router(cls):
        """Get FastAPI router (lazy-loaded)."""
        if cls._router is None:
            from fastapi import APIRouter

            cls._router = APIRouter(prefix="/health", tags=["health"])
        return cls._router

    @classmethod
    def get_logger(cls):
        """Get logger (lazy-loaded)."""
        if cls._logger is None:
            from jobforge.core.logging import get_logger

            cls._logger = get_logger(__name__)
        return cls._logger


router = _LazyDeps.get_router()

# Module-level startup time (set when module loads)
_module_start_time: float = time.time()

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _get_uptime() -> float:
    return round(time.time() - _module_start_time, 3)


def _get_version() -> str:
    from jobforge import __version__

    return __version__


# =============================================================================
# ENDPOINTS
# =============================================================================


@router.get("", response_model=HealthResponse)
async def health_check(service: JobService = Depends(get_service)) -> HealthResponse:
    """Overall health; unhealthy if the stats snapshot cannot be taken."""
    running = service.pool is not None and service.pool.running
    try:
        stats = service.stats()
    except Exception as e:
        _LazyDeps.get_logger().exception("Health check failed")
        return HealthResponse(
            success=True,
            data=HealthData(
                status="unhealthy",
                service=SERVICE_NAME,
                version=_get_version(),
                timestamp=_timestamp(),
                uptimeSeconds=_get_uptime(),
                workersRunning=running,
                error=str(e),
            ),
        )

    return HealthResponse(
        success=True,
        data=HealthData(
            status="healthy",
            service=SERVICE_NAME,
            version=_get_version(),
            timestamp=_timestamp(),
            uptimeSeconds=_get_uptime(),
            workersRunning=running,
            queue=stats,
        ),
    )


@router.get("/queue", response_model=QueueHealthResponse)
async def queue_health(
    service: JobService = Depends(get_service),
) -> QueueHealthResponse:
    """Queue depth split into active and waiting entries."""
    stats = service.stats()
    queue = stats["queue"]
    return QueueHealthResponse(
        success=True,
        data=QueueHealthData(
            status="healthy",
            stats=stats,
            activeJobs=queue["in_flight"],
            waitingJobs=queue["ready"] + queue["delayed"],
            paused=queue["paused"],
            timestamp=_timestamp(),
        ),
    )
