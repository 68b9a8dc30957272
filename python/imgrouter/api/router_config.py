"""
API router configuration for the image router.
"""
from fastapi import APIRouter

from imgrouter.constants import API_PREFIX, CHAT_COMPLETIONS_PATH
from imgrouter.api import health
from imgrouter.api.v1 import chat


def create_api_router() -> APIRouter:
    """
    Create and configure the main API router.

    Returns:
        Configured API router
    """
    api_router = APIRouter()

    api_router.include_router(health.router)

    v1_router = APIRouter(prefix=API_PREFIX)
    v1_router.include_router(
        chat.router,
        prefix=CHAT_COMPLETIONS_PATH,
        tags=["chat"]
    )
    api_router.include_router(v1_router)

    return api_router
