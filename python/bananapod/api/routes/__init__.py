"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from bananapod.api.routes.auth import router as auth_router
from bananapod.api.routes.generate import router as generate_router
from bananapod.api.routes.health import router as health_router
from bananapod.api.routes.history import router as history_router
from bananapod.api.routes.media import router as media_router
from bananapod.api.routes.video import router as video_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        Configured APIRouter with all routes registered.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(auth_router, tags=["auth"])
    api_router.include_router(generate_router, tags=["generate"])
    api_router.include_router(video_router, tags=["video"])
    api_router.include_router(history_router, tags=["history"])
    api_router.include_router(media_router, tags=["media"])
    return api_router


__all__ = ["create_api_router"]
