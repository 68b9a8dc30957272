"""
Authentication dependency for the image router.

The gateway keeps no key store: the caller's bearer credential is forwarded
to the provider, which is chosen from the credential's shape.
"""
from fastapi import Security
from fastapi.security import APIKeyHeader
import logging

from imgrouter.constants import AUTH_HEADER
from imgrouter.errors.exceptions import AuthenticationError


logger = logging.getLogger(__name__)

API_KEY_HEADER = APIKeyHeader(name=AUTH_HEADER, auto_error=False)


def strip_bearer(value: str) -> str:
    parts = value.strip().split(None, 1)
    if parts and parts[0].lower() == "bearer":
        return parts[1].strip() if len(parts) > 1 else ""
    return value.strip()


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """
    Extract the bearer credential.

    Args:
        api_key: Authorization header value

    Returns:
        The credential without its ``Bearer`` prefix

    Raises:
        AuthenticationError: If the header is missing or empty
    """
    token = strip_bearer(api_key or "")
    if not token:
        logger.warning("Request without API key rejected")
        raise AuthenticationError("Missing API key")
    return token
