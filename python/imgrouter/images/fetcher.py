"""
Bounded, cancellable retrieval of remote images.
"""
from typing import Callable, Optional, NamedTuple
import asyncio
import logging

import httpx

from imgrouter.errors.exceptions import (
    UnsupportedSchemeError, TooLargeError, UpstreamError,
    UpstreamTimeoutError, InvalidMediaTypeError
)


logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")

# Caps how much of an error body is kept for diagnostics.
_ERROR_BODY_LIMIT = 4096

URLGuard = Callable[[httpx.URL], None]


class FetchedImage(NamedTuple):
    """Body and normalized media type of a fetched image."""
    content: bytes
    media_type: str


def normalize_media_type(value: Optional[str]) -> Optional[str]:
    """Drop parameters after ``;`` and lower-case a Content-Type value."""
    if not value:
        return None
    return value.split(";", 1)[0].strip().lower() or None


def check_scheme(url: httpx.URL) -> None:
    """Reject any scheme other than http and https."""
    if url.scheme.lower() not in ALLOWED_SCHEMES:
        raise UnsupportedSchemeError(f"Unsupported image URL scheme: {url.scheme or 'none'}")


async def fetch_image(
    url: str,
    timeout: float,
    max_bytes: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    guard: Optional[URLGuard] = None,
) -> FetchedImage:
    """
    Fetch an image within a time budget and a byte ceiling.

    Args:
        url: Absolute http(s) URL
        timeout: Seconds allowed for the whole operation, body included
        max_bytes: Byte ceiling for the body
        transport: Optional httpx transport (tests inject a mock)
        guard: Optional callable run against every outgoing request URL,
            redirects included; it raises to abort the fetch

    Returns:
        Fetched bytes and media type

    Raises:
        UnsupportedSchemeError: If the scheme is not http(s)
        UpstreamError: On a non-2xx response or transport failure
        InvalidMediaTypeError: If the response is not ``image/*``
        TooLargeError: If the declared or streamed size exceeds ``max_bytes``
        UpstreamTimeoutError: If the time budget expires
    """
    target = httpx.URL(url)
    check_scheme(target)

    async def _check_request(request: httpx.Request) -> None:
        check_scheme(request.url)
        if guard is not None:
            guard(request.url)

    async with httpx.AsyncClient(
        transport=transport,
        follow_redirects=True,
        timeout=httpx.Timeout(timeout),
        event_hooks={"request": [_check_request]},
    ) as client:
        try:
            return await asyncio.wait_for(_download(client, target, max_bytes), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise UpstreamTimeoutError(f"Image fetch timed out after {timeout}s: {target}")
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to fetch image: {e}")


async def _download(client: httpx.AsyncClient, url: httpx.URL, max_bytes: int) -> FetchedImage:
    async with client.stream("GET", url, headers={"Accept": "image/*"}) as response:
        if not response.is_success:
            text = await _read_error_text(response)
            raise UpstreamError(
                f"Failed to fetch image ({response.status_code}): {text}",
                upstream_status=response.status_code,
                body=text,
            )

        raw_type = response.headers.get("content-type")
        media_type = normalize_media_type(raw_type)
        if not media_type or not media_type.startswith("image/"):
            raise InvalidMediaTypeError(f"Invalid Content-Type: {raw_type or 'unknown'}")

        declared = _declared_length(response)
        if declared is not None and declared > max_bytes:
            raise TooLargeError(f"Image too large: content-length {declared} > {max_bytes}")

        body = bytearray()
        async for chunk in response.aiter_bytes():
            if len(body) + len(chunk) > max_bytes:
                # Leaving the stream context closes the connection mid-transfer.
                raise TooLargeError(f"Image too large: exceeded {max_bytes} bytes")
            body.extend(chunk)

        logger.debug(f"Fetched {len(body)} bytes of {media_type} from {url.host}")
        return FetchedImage(bytes(body), media_type)


def _declared_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("content-length")
    if not value:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


async def _read_error_text(response: httpx.Response) -> str:
    body = bytearray()
    try:
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) >= _ERROR_BODY_LIMIT:
                break
    except httpx.HTTPError:
        pass
    return body[:_ERROR_BODY_LIMIT].decode("utf-8", errors="replace")
