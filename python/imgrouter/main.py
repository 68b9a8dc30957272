"""
Main application for the image router.
"""
import logging
import argparse
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI

from imgrouter.config.settings import Settings
from imgrouter.constants import APP_NAME, APP_VERSION, APP_DESCRIPTION, LOGO
from imgrouter.api.router_config import create_api_router
from imgrouter.core.executor import RequestExecutor
from imgrouter.middleware import setup_middleware
from imgrouter.errors.handlers import register_exception_handlers
from imgrouter.providers.registry import ProviderRegistry
from imgrouter.telemetry.setup import init_telemetry


logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (default: loaded from the environment)
        transport: httpx transport shared by every upstream call, for tests

    Returns:
        Configured FastAPI application
    """
    settings = settings or Settings.load()

    app = FastAPI(
        title=APP_NAME,
        description=APP_DESCRIPTION,
        version=APP_VERSION,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    registry = ProviderRegistry.from_settings(settings, transport=transport)
    app.state.settings = settings
    app.state.executor = RequestExecutor(settings, registry)

    setup_middleware(app, settings)
    register_exception_handlers(app)
    app.include_router(create_api_router())

    logger.info(
        f"{APP_NAME} v{APP_VERSION} ready - Mode: {settings.environment}, "
        f"providers: {', '.join(registry.list_providers())}"
    )

    return app


def run_server(host: str = None, port: int = None, reload: bool = False, log_level: str = None):
    """
    Run the image router server.

    Args:
        host: Host to bind to
        port: Port to bind to
        reload: Whether to enable auto-reload
        log_level: Log level
    """
    settings = Settings.load()
    init_telemetry(settings, log_level)

    print(LOGO)

    host = host or settings.http.host
    port = port or settings.http.port
    workers = settings.http.workers or 1

    logger.info(f"Starting {APP_NAME} v{APP_VERSION} on http://{host}:{port}")

    # Each worker builds its own app from the environment
    uvicorn.run(
        "imgrouter.main:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
        workers=workers if not reload else 1,
        log_level=log_level.lower() if log_level else settings.log_level.lower(),
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=f"{APP_NAME} Server")
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--log-level", help="Log level")
    args = parser.parse_args()

    run_server(
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )
