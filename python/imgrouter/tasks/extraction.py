"""
Image extraction from provider payloads whose shape is not fixed.

Extraction walks ``EXTRACTION_PROBES`` in order. Each probe names a field
path and whether it holds a list or a single element. Supporting a new
response shape means appending a probe, not adding a branch.
"""
from typing import Any, Iterable, List, NamedTuple, Optional, Tuple

from imgrouter.core.types import ImageReference


INLINE_PREFIX = "data:"

# Field names that may carry inline base64 inside an element object.
INLINE_FIELDS = ("b64_json", "base64")


class ExtractionProbe(NamedTuple):
    path: Tuple[str, ...]
    many: bool


EXTRACTION_PROBES: List[ExtractionProbe] = [
    ExtractionProbe(("output_images",), many=True),
    ExtractionProbe(("output", "output_images"), many=True),
    ExtractionProbe(("output", "images"), many=True),
    ExtractionProbe(("images",), many=True),
    ExtractionProbe(("data",), many=True),
    ExtractionProbe(("output_image",), many=False),
    ExtractionProbe(("output", "output_image"), many=False),
    ExtractionProbe(("output", "image"), many=False),
]


def _lookup(payload: Any, path: Iterable[str]) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def decode_element(value: Any) -> Optional[ImageReference]:
    """
    Decode one candidate element.

    A string is inline if it carries the ``data:`` prefix, otherwise a URL.
    An object may carry ``url`` and/or one of ``INLINE_FIELDS``.
    """
    if isinstance(value, str):
        if value.startswith(INLINE_PREFIX):
            return ImageReference(b64_json=value)
        return ImageReference(url=value)

    if isinstance(value, dict):
        url = value.get("url") if isinstance(value.get("url"), str) else None
        inline = next((value[f] for f in INLINE_FIELDS if isinstance(value.get(f), str)), None)
        if url or inline:
            return ImageReference(url=url, b64_json=inline)

    return None


def extract_images(payload: Any, probes: Optional[List[ExtractionProbe]] = None) -> List[ImageReference]:
    """
    Collect every image reference a payload exposes.

    Args:
        payload: Parsed JSON body from a provider
        probes: Probe list, ``EXTRACTION_PROBES`` by default

    Returns:
        References in probe order; duplicates are kept
    """
    found: List[ImageReference] = []
    for probe in probes or EXTRACTION_PROBES:
        node = _lookup(payload, probe.path)
        if probe.many:
            candidates = node if isinstance(node, list) else []
        else:
            candidates = [node] if node else []

        for candidate in candidates:
            reference = decode_element(candidate)
            if reference is not None and not reference.is_empty():
                found.append(reference)

    return found
