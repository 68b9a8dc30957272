"""
Normalization of OpenAI-style chat bodies into prompt text and image references.

Clients disagree on message shapes: ``content`` may be a string, a list of
parts, or a single part object, and image parts come as ``image_url``,
``input_image`` or ``image`` with the URL in several places.
"""
from typing import Any, Dict, List, Optional, Tuple

from imgrouter.core.types import MessagePart, NormalizedMessage, NormalizedChatRequest, Role
from imgrouter.errors.exceptions import ValidationError


TEXT_PART_TYPES = ("text", "input_text")
IMAGE_PART_TYPES = ("image_url", "input_image", "image")


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _non_blank(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _text_part(item: Any) -> Optional[str]:
    if isinstance(item, str):
        return item
    if not isinstance(item, dict) or item.get("type") not in TEXT_PART_TYPES:
        return None
    return _as_str(item.get("text")) or _as_str(item.get("content"))


def _image_part(item: Any) -> Optional[MessagePart]:
    if not isinstance(item, dict) or item.get("type") not in IMAGE_PART_TYPES:
        return None

    image_url = item.get("image_url")

    # {"type": "image_url", "image_url": "..."}
    if _non_blank(_as_str(image_url)):
        return MessagePart(kind="image", url=image_url)

    # {"type": "image_url", "image_url": {"url": "...", "detail": "..."}}
    if isinstance(image_url, dict) and _non_blank(_as_str(image_url.get("url"))):
        return MessagePart(kind="image", url=image_url["url"], detail=_as_str(image_url.get("detail")))

    # {"type": "input_image", "url": "..."} / {"type": "image", "image": "..."}
    url = _as_str(item.get("url")) or _as_str(item.get("image"))
    if _non_blank(url):
        return MessagePart(kind="image", url=url)

    # {"type": "image_url", "image_url": {"image_url": "..."}}
    if isinstance(image_url, dict) and _non_blank(_as_str(image_url.get("image_url"))):
        return MessagePart(kind="image", url=image_url["image_url"])

    return None


def normalize_content(content: Any) -> List[MessagePart]:
    """Reduce any supported ``content`` shape to ordered text and image parts."""
    if isinstance(content, str):
        return [MessagePart(kind="text", text=content)] if content.strip() else []

    items = content if isinstance(content, list) else [content]
    parts: List[MessagePart] = []
    for item in items:
        text = _text_part(item)
        if _non_blank(text):
            parts.append(MessagePart(kind="text", text=text))
            continue

        image = _image_part(item)
        if image is not None:
            parts.append(image)

    return parts


def normalize_chat_request(body: Any) -> NormalizedChatRequest:
    """
    Normalize a chat completion body.

    Args:
        body: Parsed JSON body

    Returns:
        Normalized request; unknown top-level fields are kept in ``extra``

    Raises:
        ValidationError: If the body is not an object or ``messages`` is not a list
    """
    if not isinstance(body, dict):
        raise ValidationError("Invalid request body: expected JSON object")

    raw_messages = body.get("messages")
    if not isinstance(raw_messages, list):
        raise ValidationError("Invalid request body: messages must be an array", details={"param": "messages"})

    messages = []
    for raw in raw_messages:
        if not isinstance(raw, dict):
            messages.append(NormalizedMessage(role=Role.USER.value))
            continue
        messages.append(NormalizedMessage(
            role=_as_str(raw.get("role")) or Role.USER.value,
            parts=normalize_content(raw.get("content")),
        ))

    return NormalizedChatRequest(
        model=_as_str(body.get("model")),
        size=_as_str(body.get("size")),
        stream=body.get("stream") is True,
        messages=messages,
        extra=dict(body),
    )


def extract_prompt_and_images(messages: List[NormalizedMessage]) -> Tuple[str, List[str]]:
    """
    Take the prompt and image references from the last user message.

    Returns:
        Joined text of that message and its non-empty image references
    """
    for message in reversed(messages):
        if message.role != Role.USER.value:
            continue
        prompt = "\n".join(p.text for p in message.parts if p.kind == "text" and p.text).strip()
        images = [p.url for p in message.parts if p.kind == "image" and _non_blank(p.url)]
        return prompt, images
    return "", []


def inject_images_into_last_user_message(body: Any, data_urls: List[str]) -> Any:
    """
    Append image parts to the last user message of a raw chat body.

    A user message is created when none exists. The body is modified in place
    and returned.
    """
    if not isinstance(body, dict) or not isinstance(body.get("messages"), list) or not data_urls:
        return body

    image_parts: List[Dict[str, Any]] = [{"type": "image_url", "image_url": {"url": url}} for url in data_urls]
    messages = body["messages"]

    target = next(
        (m for m in reversed(messages) if isinstance(m, dict) and m.get("role") == Role.USER.value),
        None,
    )
    if target is None:
        messages.append({"role": Role.USER.value, "content": image_parts})
        return body

    current = target.get("content")
    if isinstance(current, str):
        content = [{"type": "text", "text": current}]
    elif isinstance(current, list):
        content = list(current)
    elif current is None:
        content = []
    else:
        content = [current]

    target["content"] = content + image_parts
    return body
