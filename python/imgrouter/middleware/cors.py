"""
CORS middleware configuration for the image router.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Optional

from imgrouter.config.settings import Settings


def setup_cors(app: FastAPI, settings: Settings, origins: Optional[List[str]] = None) -> None:
    """
    Set up CORS middleware for the FastAPI application.

    Args:
        app: FastAPI application
        settings: Application settings
        origins: List of allowed origins (default: from settings)
    """
    if origins is None:
        origins = settings.http.cors_allow_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=settings.http.cors_allow_methods,
        allow_headers=settings.http.cors_allow_headers,
        max_age=settings.http.cors_max_age,
    )
