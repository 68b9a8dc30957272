"""
Image resolver: turns a caller-supplied image reference into verified bytes.

A reference is either an inline ``data:<media-type>;base64,<payload>`` URL or
an absolute http(s) URL. Remote references are checked against the private
network policy before any connection is made.
"""
from typing import Any, Optional
import logging

import httpx
from pydantic import BaseModel, ConfigDict, Field

from imgrouter.constants import IMAGE_FETCH_TIMEOUT, MAX_IMAGE_BYTES
from imgrouter.errors.exceptions import (
    InvalidReferenceError, UnsupportedEncodingError, InvalidMediaTypeError,
    TooLargeError, BlockedBySsrfPolicyError
)
from imgrouter.images import codec
from imgrouter.images.fetcher import check_scheme, fetch_image, normalize_media_type
from imgrouter.images.network import is_private_host


logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:"


class ResolveOptions(BaseModel):
    """Limits and policy for a single resolution."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    timeout: float = Field(IMAGE_FETCH_TIMEOUT, gt=0, description="Seconds allowed for a remote fetch")
    max_bytes: int = Field(MAX_IMAGE_BYTES, gt=0, description="Byte ceiling for the decoded image")
    allow_private_network: bool = Field(False, description="Permit localhost and private hosts")
    transport: Optional[Any] = Field(None, description="httpx transport override, for tests")


class ResolvedImage(BaseModel):
    """An image reference resolved to bytes, in every form a provider may want."""
    model_config = ConfigDict(frozen=True)

    source: str
    media_type: str
    content: bytes
    base64: str
    data_url: str
    size: int

    @classmethod
    def from_bytes(cls, source: str, media_type: str, content: bytes) -> "ResolvedImage":
        encoded = codec.encode(content)
        return cls(
            source=source,
            media_type=media_type,
            content=content,
            base64=encoded,
            data_url=f"data:{media_type};base64,{encoded}",
            size=len(content),
        )


def is_data_url(reference: str) -> bool:
    return reference.startswith(DATA_URL_PREFIX)


def parse_data_url(reference: str) -> ResolvedImage:
    """
    Decode a ``data:`` URL carrying a base64 image.

    Raises:
        InvalidReferenceError: If the comma separator is missing
        UnsupportedEncodingError: If the payload is not base64
        InvalidMediaTypeError: If the media type is not ``image/*``
    """
    meta, sep, payload = reference[len(DATA_URL_PREFIX):].partition(",")
    if not sep:
        raise InvalidReferenceError("Invalid data URL: missing comma")

    params = meta.split(";")
    media_type = normalize_media_type(params[0]) or "application/octet-stream"
    if "base64" not in (p.strip().lower() for p in params[1:]):
        raise UnsupportedEncodingError("Invalid data URL: only base64-encoded data URLs are supported")
    if not media_type.startswith("image/"):
        raise InvalidMediaTypeError(f"Invalid data URL media type: {media_type}")

    return ResolvedImage.from_bytes(reference, media_type, codec.decode(payload))


def parse_remote_url(reference: str) -> httpx.URL:
    """
    Parse an absolute remote URL.

    Raises:
        InvalidReferenceError: If the reference is not an absolute URL
        UnsupportedSchemeError: If the scheme is not http(s)
    """
    try:
        url = httpx.URL(reference.strip())
    except httpx.InvalidURL:
        raise InvalidReferenceError("Invalid image url: not a valid URL")

    if not url.scheme:
        raise InvalidReferenceError("Invalid image url: not a valid URL")
    check_scheme(url)
    if not url.host:
        raise InvalidReferenceError("Invalid image url: missing host")
    return url


def check_host_allowed(url: httpx.URL) -> None:
    """Raise if ``url`` targets a private, loopback or link-local host."""
    if is_private_host(url.host):
        raise BlockedBySsrfPolicyError(
            "Blocked by SSRF protection: private/localhost address is not allowed",
            details={"host": url.host},
        )


async def resolve_image(reference: Any, options: Optional[ResolveOptions] = None) -> ResolvedImage:
    """
    Resolve an image reference to bytes.

    Args:
        reference: ``data:`` URL or absolute http(s) URL
        options: Time budget, byte ceiling and network policy

    Returns:
        The resolved image

    Raises:
        InvalidReferenceError, UnsupportedEncodingError, InvalidMediaTypeError,
        TooLargeError, UnsupportedSchemeError, BlockedBySsrfPolicyError,
        UpstreamError, UpstreamTimeoutError
    """
    options = options or ResolveOptions()

    if not isinstance(reference, str) or not reference.strip():
        raise InvalidReferenceError("Invalid image url: empty")

    if is_data_url(reference):
        resolved = parse_data_url(reference)
        # The ceiling applies to the decoded payload, not the encoded text.
        if resolved.size > options.max_bytes:
            raise TooLargeError(f"Image too large: {resolved.size} > {options.max_bytes}")
        return resolved

    url = parse_remote_url(reference)
    guard = None if options.allow_private_network else check_host_allowed
    if guard is not None:
        guard(url)

    fetched = await fetch_image(
        str(url),
        timeout=options.timeout,
        max_bytes=options.max_bytes,
        transport=options.transport,
        guard=guard,
    )
    logger.debug(f"Resolved remote image {url.host} ({fetched.media_type}, {len(fetched.content)} bytes)")
    return ResolvedImage.from_bytes(reference, fetched.media_type, fetched.content)
