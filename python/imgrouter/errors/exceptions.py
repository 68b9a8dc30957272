"""
Custom exceptions for the image router.

Every error carries the HTTP status it maps to and a stable ``error_type``
string used in the OpenAI-style error body.
"""
from typing import Optional, Any


class GatewayError(Exception):
    """Base exception for all image router errors."""

    status_code: int = 400
    error_type: str = "gateway_error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(GatewayError):
    """Error related to configuration issues."""
    status_code = 500
    error_type = "configuration_error"


class AuthenticationError(GatewayError):
    """Missing or unrecognised credential."""
    status_code = 401
    error_type = "authentication_error"


class ValidationError(GatewayError):
    """Malformed request body."""
    error_type = "validation_error"


class ProviderNotFoundError(GatewayError):
    """Error when a requested provider is not registered."""
    status_code = 404
    error_type = "provider_not_found_error"


# Codec


class Base64DecodeError(ValidationError):
    """Base class for portable-text decoding failures."""
    error_type = "invalid_base64"


class InvalidLengthError(Base64DecodeError):
    """Encoded text cannot be padded to a whole number of groups."""
    error_type = "invalid_base64_length"


class InvalidCharacterError(Base64DecodeError):
    """Encoded text contains a symbol outside the alphabet, or misplaced padding."""
    error_type = "invalid_base64_character"


# Image resolution


class InvalidReferenceError(ValidationError):
    """Image reference is empty, not a string, or not parsable."""
    error_type = "invalid_image_reference"


class UnsupportedEncodingError(ValidationError):
    """Inline image is not base64 encoded."""
    error_type = "unsupported_image_encoding"


class InvalidMediaTypeError(ValidationError):
    """Media type is missing or not ``image/*``."""
    error_type = "invalid_media_type"


class UnsupportedSchemeError(ValidationError):
    """Remote reference uses a scheme other than http or https."""
    error_type = "unsupported_scheme"


class TooLargeError(GatewayError):
    """Image payload exceeds the byte ceiling."""
    status_code = 413
    error_type = "image_too_large"


class BlockedBySsrfPolicyError(GatewayError):
    """Remote reference points into a private, loopback or link-local network."""
    status_code = 403
    error_type = "blocked_by_ssrf_policy"


# Upstream


class UpstreamError(GatewayError):
    """Non-2xx response (or transport failure) from an upstream service."""
    status_code = 502
    error_type = "upstream_error"

    def __init__(self, message: str, upstream_status: Optional[int] = None, body: str = "", details: Optional[Any] = None):
        if details is None:
            details = {"upstream_status": upstream_status, "body": body}
        super().__init__(message, details)
        self.upstream_status = upstream_status
        self.body = body


class UpstreamTimeoutError(GatewayError):
    """A single upstream operation ran out of its time budget."""
    status_code = 504
    error_type = "timeout"


class MalformedResponseError(GatewayError):
    """Upstream replied with a body we cannot interpret."""
    status_code = 502
    error_type = "malformed_response"


class MissingReferenceImageError(ValidationError):
    """An image-edit job was requested without any input image."""
    error_type = "missing_reference_image"


class UpstreamTaskFailedError(GatewayError):
    """The provider declared an asynchronous job failed."""
    status_code = 502
    error_type = "upstream_task_failed"


class PollTimeoutError(GatewayError):
    """An asynchronous job did not finish within the poll attempt budget."""
    status_code = 504
    error_type = "poll_timeout"
