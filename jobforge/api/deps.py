"""Request-scoped dependencies shared by the API routers."""

from __future__ import annotations

from fastapi import Request

from jobforge.core.jobs.service import JobService


def get_service(request: Request) -> JobService:
    """JobService attached to the application by create_app()."""
    return request.app.state.service
