"""Processing Router.

Job submission, status, cancellation and queue administration for the owner
system.

Endpoints:
- POST /processing/trigger - Submit a document for processing
- GET /processing/status/{job_id} - Job status record
- POST /processing/cancel/{job_id} - Request cancellation
- GET /processing/stats - Job and queue counts
- POST /processing/queue/pause - Stop handing out work
- POST /processing/queue/resume - Resume handing out work
- POST /processing/queue/clean - Remove old terminal jobs
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from jobforge.api.deps import get_service
from jobforge.core.exceptions import JobNotFoundError
from jobforge.core.jobs.service import JobService

# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================


class TriggerRequest(BaseModel):
    """Body of POST /processing/trigger."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(
        ..., alias="documentId", min_length=1, description="Document to process"
    )
    ingestion_id: Optional[str] = Field(
        default=None,
        alias="ingestionId",
        description="Owner-side ingestion id, used as the job id",
    )
    job_id: Optional[str] = Field(
        default=None, alias="jobId", description="Explicit job id"
    )
    config: Optional[Dict[str, Any]] = Field(
        default=None, description="Stage toggles, priority and metadata"
    )
    delay_seconds: float = Field(
        default=0, alias="delaySeconds", ge=0, description="Delay before the job is eligible"
    )


class ApiResponse(BaseModel):
    """Envelope used by every processing endpoint."""

    success: bool = Field(..., description="Whether the request succeeded")
    data: Any = Field(default=None, description="Endpoint payload")
    message: Optional[str] = Field(default=None, description="Human-readable summary")


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

            cls._router = APIRouter(prefix="/processing", tags=["processing"])
        return cls._router

    @classmethod
    def get_logger(cls):
        """Get logger (lazy-loaded)."""
        if cls._logger is None:
            from jobforge.core.logging import get_logger

            cls._logger = get_logger(__name__)
        return cls._logger


router = _LazyDeps.get_router()

# =============================================================================
# ENDPOINTS
# =============================================================================


@router.post(
    "/trigger",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_processing(
    body: TriggerRequest, service: JobService = Depends(get_service)
) -> ApiResponse:
    """Submit a document for processing.

    The job id is `ingestionId` when given, else `jobId`, else generated.
    Validation errors map to 400, a reused id to 409.
    """
    result = service.submit(
        body.document_id,
        job_id=body.ingestion_id or body.job_id,
        config=body.config,
        delay_seconds=body.delay_seconds,
        correlation_id=body.ingestion_id,
    )
    return ApiResponse(
        success=True, data=result, message="Document processing initiated"
    )


@router.get("/status/{job_id}", response_model=ApiResponse)
async def get_processing_status(
    job_id: str, service: JobService = Depends(get_service)
) -> ApiResponse:
    """Status record of one job."""
    record = service.get_status(job_id)
    if record is None:
        raise JobNotFoundError(job_id)
    return ApiResponse(success=True, data=record)


@router.post("/cancel/{job_id}", response_model=ApiResponse)
async def cancel_processing(
    job_id: str, service: JobService = Depends(get_service)
) -> ApiResponse:
    """Request cancellation of a job.

    `cancelled` is false when the job is unknown or already terminal.
    """
    result = service.cancel(job_id)
    message = (
        "Cancellation requested"
        if result["cancelled"]
        else "Job not found or already finished; nothing to cancel"
    )
    return ApiResponse(success=True, data=result, message=message)


@router.get("/stats", response_model=ApiResponse)
async def get_processing_stats(
    service: JobService = Depends(get_service),
) -> ApiResponse:
    """Job counts by status and queue depth."""
    return ApiResponse(success=True, data=service.stats())


@router.post("/queue/pause", response_model=ApiResponse)
async def pause_queue(service: JobService = Depends(get_service)) -> ApiResponse:
    service.pause()
    _LazyDeps.get_logger().info("Queue paused via API")
    return ApiResponse(success=True, data={"paused": True}, message="Queue paused")


@router.post("/queue/resume", response_model=ApiResponse)
async def resume_queue(service: JobService = Depends(get_service)) -> ApiResponse:
    service.resume()
    _LazyDeps.get_logger().info("Queue resumed via API")
    return ApiResponse(success=True, data={"paused": False}, message="Queue resumed")


@router.post("/queue/clean", response_model=ApiResponse)
async def clean_queue(
    older_than_seconds: float = Query(0, alias="olderThanSeconds", ge=0),
    service: JobService = Depends(get_service),
) -> ApiResponse:
    """Remove terminal jobs older than `olderThanSeconds`."""
    removed = service.clean(older_than_seconds)
    return ApiResponse(success=True, data=removed, message="Queue cleaned")
