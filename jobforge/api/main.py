"""
JobForge HTTP API.

FastAPI application exposing job submission, status and queue
administration to the owner system. The worker pool runs inside the
application lifespan.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from jobforge.core.config import Config
from jobforge.core.exceptions import (
    DuplicateJobError,
    InvalidTransitionError,
    JobForgeError,
    JobNotFoundError,
    ValidationError,
)
from jobforge.core.jobs.service import JobService
from jobforge.core.logging import get_logger

logger = get_logger(__name__)

# Most specific first; the first isinstance match wins
ERROR_STATUS_CODES = (
    (ValidationError, 400),
    (JobNotFoundError, 404),
    (DuplicateJobError, 409),
    (InvalidTransitionError, 409),
)


def status_code_for(error: JobForgeError) -> int:
    """HTTP status code for a domain error."""
    for error_type, code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return 500


async def _handle_jobforge_error(request: Request, exc: JobForgeError) -> JSONResponse:
    code = status_code_for(exc)
    if code >= 500:
        logger.error(
            "Request failed",
            path=request.url.path,
            error_code=exc.error_code,
            error=str(exc),
        )
    return JSONResponse(
        status_code=code,
        content={"success": False, "error": exc.to_dict()},
    )


def create_app(
    service: JobService,
    config: Optional[Config] = None,
    start_workers: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application around a JobService.

    Args:
        service: Service the routes delegate to.
        config: Used for CORS origins. Defaults to Config().
        start_workers: Run the worker pool for the lifetime of the app.

    Returns:
        Configured FastAPI application.
    """
    from jobforge import __version__
    from jobforge.api.routes import health_router, processing_router

    config = config or Config()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        workers: Optional[asyncio.Task] = None
        if start_workers and service.pool is not None:
            workers = asyncio.create_task(service.run_workers())
        logger.info("API started", workers=start_workers)
        try:
            yield
        finally:
            if workers is not None:
                await service.stop_workers()
                await workers
            service.close()
            logger.info("API stopped")

    app = FastAPI(title="JobForge API", version=__version__, lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.api.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(JobForgeError, _handle_jobforge_error)

    app.include_router(processing_router)
    app.include_router(health_router)
    return app


def create_default_app() -> FastAPI:
    """Application built from the discovered config file, for `uvicorn --factory`."""
    from jobforge.core.config import load_config
    from jobforge.core.jobs.factory import create_job_service

    config = load_config()
    return create_app(create_job_service(config), config=config)


def run_server(config: Config, service: Optional[JobService] = None) -> None:
    """Serve the API with uvicorn until interrupted."""
    import uvicorn

    if service is None:
        from jobforge.core.jobs.factory import create_job_service

        service = create_job_service(config)
    app = create_app(service, config=config)
    uvicorn.run(
        app,
        host=config.api.host,
        port=config.api.port,
        log_level=config.logging.level.lower(),
    )
