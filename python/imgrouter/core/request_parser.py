"""
Inbound body parsing: JSON, or multipart with a JSON payload plus image files.
"""
from typing import Any, List
import json
import logging

from fastapi import Request
from pydantic import BaseModel, Field
from starlette.datastructures import UploadFile

from imgrouter.core.normalizer import inject_images_into_last_user_message
from imgrouter.errors.exceptions import ValidationError, InvalidMediaTypeError, TooLargeError
from imgrouter.images import codec
from imgrouter.images.fetcher import normalize_media_type


logger = logging.getLogger(__name__)

PAYLOAD_FIELDS = ("payload", "json", "request")
IMAGE_FIELD_NAMES = ("file", "image", "images", "files")
IMAGE_FIELD_SUFFIXES = ("file", "image", "images", "[]")


class ParsedBody(BaseModel):
    """A chat body ready for normalization."""
    body: Any = None
    injected_image_count: int = 0
    warnings: List[str] = Field(default_factory=list)


def _is_image_field(name: str, upload: UploadFile) -> bool:
    lower = name.lower()
    if lower in IMAGE_FIELD_NAMES or lower.endswith(IMAGE_FIELD_SUFFIXES):
        return True
    return (normalize_media_type(upload.content_type) or "").startswith("image/")


async def upload_to_data_url(upload: UploadFile, max_bytes: int) -> str:
    """
    Read an uploaded image into a data URL.

    Raises:
        InvalidMediaTypeError: If the upload is not ``image/*``
        TooLargeError: If the upload exceeds ``max_bytes``
    """
    media_type = normalize_media_type(upload.content_type) or ""
    if not media_type.startswith("image/"):
        raise InvalidMediaTypeError(f"Invalid uploaded file type: {upload.content_type or 'unknown'}")

    content = await upload.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise TooLargeError(f"Uploaded image too large: exceeds {max_bytes} bytes")
    return f"data:{media_type};base64,{codec.encode(content)}"


async def parse_chat_request_body(request: Request, max_bytes: int) -> ParsedBody:
    """
    Parse a chat completion body from a JSON or multipart request.

    Args:
        request: Inbound request
        max_bytes: Byte ceiling for each uploaded image

    Returns:
        Parsed body, with uploaded images injected into the last user message

    Raises:
        ValidationError: If the body (or multipart payload) is not valid JSON
    """
    content_type = (request.headers.get("content-type") or "").lower()
    if "multipart/form-data" not in content_type:
        try:
            return ParsedBody(body=await request.json())
        except ValueError:
            raise ValidationError("Invalid request body: not valid JSON")

    form = await request.form()
    payload = next((form.get(f) for f in PAYLOAD_FIELDS if isinstance(form.get(f), str)), None)
    if not payload:
        raise ValidationError("multipart/form-data missing payload field (JSON string)")

    try:
        body = json.loads(payload)
    except ValueError:
        raise ValidationError("Invalid multipart payload: not valid JSON")

    data_urls = []
    for name, value in form.multi_items():
        if isinstance(value, UploadFile) and _is_image_field(name, value):
            data_urls.append(await upload_to_data_url(value, max_bytes))

    if not data_urls:
        return ParsedBody(
            body=body,
            warnings=["multipart/form-data has no image files; payload will be used as-is"],
        )

    logger.debug(f"Injected {len(data_urls)} uploaded image(s) into the last user message")
    return ParsedBody(
        body=inject_images_into_last_user_message(body, data_urls),
        injected_image_count=len(data_urls),
    )
