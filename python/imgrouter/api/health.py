"""
Health check endpoints for the image router.
"""
from fastapi import APIRouter, status
from fastapi.responses import PlainTextResponse

from imgrouter.constants import APP_VERSION, HEALTH_PATH


router = APIRouter(tags=["health"])


@router.get(HEALTH_PATH, status_code=status.HTTP_200_OK)
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": APP_VERSION}


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
@router.get("/healthz", response_class=PlainTextResponse, include_in_schema=False)
async def liveness():
    return "ok"
