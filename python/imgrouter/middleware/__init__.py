"""
Middleware package initialization.
"""
from fastapi import FastAPI

from imgrouter.config.settings import Settings
from imgrouter.middleware.cors import setup_cors
from imgrouter.middleware.logging import LoggingMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """
    Set up all middleware for the FastAPI application.

    Args:
        app: FastAPI application
        settings: Application settings
    """
    setup_cors(app, settings)
    app.add_middleware(LoggingMiddleware)
