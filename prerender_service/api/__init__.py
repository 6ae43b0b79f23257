"""
API sub-package for the Prerender Service.

This package contains all modules related to the FastAPI application,
including route definitions, Pydantic models, and the main app setup.

No objects are exported directly from this `api` package level.
Modules like `api.main` or routers from `api.routes` should be imported
directly from their respective paths.
"""

__all__ = []
