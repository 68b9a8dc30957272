"""
Base64 codec for image payloads.

Encoding is the standard alphabet with ``=`` padding. Decoding is lenient
about whitespace, missing padding and the URL-safe ``-_`` symbols, and strict
about everything else.
"""
import base64
import binascii
import re

from imgrouter.errors.exceptions import InvalidLengthError, InvalidCharacterError


ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"

_WHITESPACE = re.compile(r"\s+")
_SYMBOLS = frozenset(ALPHABET + "-_")
_URLSAFE = str.maketrans("-_", "+/")


def encode(data: bytes) -> str:
    """
    Encode bytes to base64 text.

    Args:
        data: Raw bytes

    Returns:
        Padded base64 text, ``""`` for empty input
    """
    return base64.b64encode(bytes(data)).decode("ascii")


def decode(text: str) -> bytes:
    """
    Decode base64 text to bytes.

    Args:
        text: Base64 text, optionally URL-safe, unpadded or wrapped

    Returns:
        Decoded bytes

    Raises:
        InvalidLengthError: If the text cannot form whole 4-symbol groups
        InvalidCharacterError: If a symbol is outside the alphabet or padding is misplaced
    """
    cleaned = _WHITESPACE.sub("", text)
    if not cleaned:
        return b""

    # A single dangling symbol would need three pad characters; no encoder emits that.
    remainder = len(cleaned) % 4
    if remainder == 1:
        raise InvalidLengthError(f"Invalid base64 length: {len(cleaned)}")
    padded = cleaned + "=" * ((4 - remainder) % 4)
    if len(padded) % 4 != 0:
        raise InvalidLengthError(f"Invalid base64 length: {len(cleaned)}")

    _check_symbols(padded)

    try:
        return base64.b64decode(padded.translate(_URLSAFE), validate=True)
    except binascii.Error as e:
        raise InvalidCharacterError(f"Invalid base64 character: {e}")


def _check_symbols(padded: str) -> None:
    body_end = len(padded) - 4
    for i, ch in enumerate(padded):
        if ch in _SYMBOLS:
            continue
        if ch == "=" and i >= body_end + 2:
            continue
        raise InvalidCharacterError(f"Invalid base64 character {ch!r} at offset {i}")

    # "x=y" in the last group: padding must run to the end.
    if padded[-2] == "=" and padded[-1] != "=":
        raise InvalidCharacterError("Invalid base64 padding")
