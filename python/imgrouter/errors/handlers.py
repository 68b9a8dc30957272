"""
Error handlers for the image router.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging
from typing import Dict, Any, Optional

from imgrouter.errors.exceptions import (
    GatewayError, AuthenticationError, ValidationError, UpstreamError
)


logger = logging.getLogger(__name__)


def create_error_response(status_code: int, message: str, type: str = "gateway_error", param: Optional[str] = None) -> Dict[str, Any]:
    """
    Create a standardized error response.

    Args:
        status_code: HTTP status code
        message: Error message
        type: Error type
        param: Parameter that caused the error

    Returns:
        Error response dictionary
    """
    return {
        "error": {
            "message": message,
            "type": type,
            "param": param,
            "code": status_code
        }
    }


def _param(exc: GatewayError) -> Optional[str]:
    if isinstance(exc.details, dict):
        return exc.details.get("param")
    return None


async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """
    Handler for gateway errors; the status comes from the exception class.

    Args:
        request: FastAPI request
        exc: Gateway error exception

    Returns:
        JSON response with error details
    """
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc.message}")
    else:
        logger.warning(f"{exc.__class__.__name__}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            status_code=exc.status_code,
            message=exc.message,
            type=exc.error_type,
            param=_param(exc),
        )
    )


async def authentication_exception_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    """
    Handler for authentication errors.

    Args:
        request: FastAPI request
        exc: Authentication error exception

    Returns:
        JSON response with error details
    """
    logger.warning(f"Authentication error: {exc.message}")

    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        headers={"WWW-Authenticate": "Bearer"},
        content=create_error_response(
            status_code=401,
            message=exc.message,
            type=exc.error_type
        )
    )


async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """
    Handler for malformed input: bodies, image references and encodings.
    """
    logger.warning(f"Validation error ({exc.error_type}): {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            status_code=exc.status_code,
            message=exc.message,
            type=exc.error_type,
            param=_param(exc)
        )
    )


async def upstream_exception_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    """
    Handler for upstream failures. The upstream status is reported in ``param``.
    """
    logger.error(f"Upstream error (status {exc.upstream_status}): {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(
            status_code=exc.status_code,
            message=exc.message,
            type=exc.error_type,
            param=str(exc.upstream_status) if exc.upstream_status is not None else None
        )
    )


def register_exception_handlers(app):
    """
    Register all exception handlers with the FastAPI app.

    Args:
        app: FastAPI application
    """
    app.add_exception_handler(GatewayError, gateway_exception_handler)
    app.add_exception_handler(AuthenticationError, authentication_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(UpstreamError, upstream_exception_handler)
