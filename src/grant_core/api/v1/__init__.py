"""API v1 router aggregation.

This module combines all v1 API routers into a single router
that can be mounted on the main FastAPI application.
"""

from fastapi import APIRouter

from .oauth2 import router as oauth2_router
from .scopes import router as scopes_router

# Create main v1 router
router = APIRouter(prefix="/api/v1")

# Scope catalog is registered first so its static paths win
router.include_router(scopes_router, tags=["scopes"])
router.include_router(oauth2_router, tags=["oauth2"])


__all__ = ["router"]
