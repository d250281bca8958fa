"""API routes."""

from .artifacts import router as artifacts_router
from .jobs import router as jobs_router

__all__ = ["artifacts_router", "jobs_router"]
