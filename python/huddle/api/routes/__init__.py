"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from huddle.api.routes.conversations import router as conversations_router
from huddle.api.routes.friends import router as friends_router
from huddle.api.routes.groups import router as groups_router
from huddle.api.routes.health import router as health_router
from huddle.api.routes.images import router as images_router
from huddle.api.routes.internal import router as internal_router
from huddle.api.routes.me import router as me_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        Configured APIRouter with all routes registered.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(me_router, tags=["user"])
    api_router.include_router(conversations_router, tags=["conversations"])
    api_router.include_router(images_router, tags=["images"])
    api_router.include_router(groups_router, tags=["groups"])
    api_router.include_router(friends_router, tags=["friends"])
    api_router.include_router(internal_router, tags=["internal"])
    return api_router


__all__ = ["create_api_router"]
