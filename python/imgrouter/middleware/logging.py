"""
Logging middleware for the image router.
"""
from fastapi import Request, Response
import logging
import time
from typing import Callable, Awaitable
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from imgrouter.constants import REQUEST_ID_HEADER


logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Assigns a request id and logs each request and response."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        """
        Process the request and log request/response details.

        The request id is taken from ``X-Request-ID`` when the caller sends
        one, stored on ``request.state`` and echoed in the response.
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_host": request.client.host if request.client else None,
                "user_agent": request.headers.get("User-Agent"),
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(
                f"Error: {str(e)} in {duration_ms}ms",
                extra={
                    "request_id": request_id,
                    "error": str(e),
                    "duration_ms": duration_ms,
                },
                exc_info=True
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        response.headers[REQUEST_ID_HEADER] = request_id

        logger.info(
            f"Response: {response.status_code} in {duration_ms}ms",
            extra={
                "request_id": request_id,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            }
        )

        return response
