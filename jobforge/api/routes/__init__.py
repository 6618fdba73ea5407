"""API routers."""

from jobforge.api.routes.health import router as health_router
from jobforge.api.routes.processing import router as processing_router

__all__ = ["health_router", "processing_router"]
