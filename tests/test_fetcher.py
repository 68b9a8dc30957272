import asyncio

import httpx
import pytest

from imgrouter.errors.exceptions import (
    TooLargeError, UpstreamError, UpstreamTimeoutError,
    InvalidMediaTypeError, UnsupportedSchemeError, BlockedBySsrfPolicyError
)
from imgrouter.images.fetcher import fetch_image, normalize_media_type
from imgrouter.images.resolver import check_host_allowed


class ChunkStream(httpx.AsyncByteStream):
    """Response body that counts how many chunks were pulled from it."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.pulled = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            self.pulled += 1
            yield chunk


async def test_fetch_returns_body_and_normalized_media_type(mock_upstream, png_bytes):
    recorder, transport = mock_upstream(
        lambda request: httpx.Response(200, headers={"content-type": "Image/PNG; charset=binary"}, content=png_bytes)
    )

    fetched = await fetch_image("https://cdn.example.com/a.png", timeout=5, max_bytes=1024, transport=transport)

    assert fetched.content == png_bytes
    assert fetched.media_type == "image/png"
    assert recorder.calls == 1


async def test_declared_length_over_ceiling_is_rejected_before_reading(mock_upstream):
    stream = ChunkStream([b"x" * 1024])
    _, transport = mock_upstream(lambda request: httpx.Response(
        200,
        headers={"content-type": "image/png", "content-length": str(50 * 1024 * 1024)},
        stream=stream,
    ))

    with pytest.raises(TooLargeError):
        await fetch_image("https://cdn.example.com/big.png", timeout=5, max_bytes=10 * 1024 * 1024, transport=transport)

    assert stream.pulled == 0


async def test_streamed_body_over_ceiling_stops_early(mock_upstream):
    stream = ChunkStream([b"x" * 600, b"x" * 600, b"x" * 600, b"x" * 600])
    _, transport = mock_upstream(
        lambda request: httpx.Response(200, headers={"content-type": "image/png"}, stream=stream)
    )

    with pytest.raises(TooLargeError):
        await fetch_image("https://cdn.example.com/a.png", timeout=5, max_bytes=1000, transport=transport)

    assert stream.pulled == 2


async def test_body_exactly_at_ceiling_is_accepted(mock_upstream):
    _, transport = mock_upstream(
        lambda request: httpx.Response(200, headers={"content-type": "image/png"}, content=b"x" * 1000)
    )

    fetched = await fetch_image("https://cdn.example.com/a.png", timeout=5, max_bytes=1000, transport=transport)

    assert len(fetched.content) == 1000


async def test_slow_server_times_out(mock_upstream):
    async def slow(request):
        await asyncio.sleep(5)
        return httpx.Response(200, headers={"content-type": "image/png"}, content=b"x")

    _, transport = mock_upstream(slow)

    with pytest.raises(UpstreamTimeoutError):
        await fetch_image("https://cdn.example.com/a.png", timeout=0.05, max_bytes=1000, transport=transport)


async def test_non_success_status_is_upstream_error(mock_upstream):
    _, transport = mock_upstream(lambda request: httpx.Response(404, text="not here"))

    with pytest.raises(UpstreamError) as exc_info:
        await fetch_image("https://cdn.example.com/a.png", timeout=5, max_bytes=1000, transport=transport)

    assert exc_info.value.upstream_status == 404
    assert "not here" in exc_info.value.body


async def test_non_image_content_type_is_rejected(mock_upstream):
    _, transport = mock_upstream(
        lambda request: httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html>")
    )

    with pytest.raises(InvalidMediaTypeError):
        await fetch_image("https://cdn.example.com/a.png", timeout=5, max_bytes=1000, transport=transport)


async def test_unsupported_scheme_is_rejected_without_request(mock_upstream):
    recorder, transport = mock_upstream(lambda request: httpx.Response(200))

    with pytest.raises(UnsupportedSchemeError):
        await fetch_image("ftp://cdn.example.com/a.png", timeout=5, max_bytes=1000, transport=transport)

    assert recorder.calls == 0


async def test_redirect_into_private_network_is_blocked(mock_upstream, png_bytes):
    def handler(request):
        if request.url.host == "cdn.example.com":
            return httpx.Response(302, headers={"location": "http://127.0.0.1/secret.png"})
        return httpx.Response(200, headers={"content-type": "image/png"}, content=png_bytes)

    recorder, transport = mock_upstream(handler)

    with pytest.raises(BlockedBySsrfPolicyError):
        await fetch_image(
            "https://cdn.example.com/a.png", timeout=5, max_bytes=1000,
            transport=transport, guard=check_host_allowed,
        )

    assert [r.url.host for r in recorder.requests] == ["cdn.example.com"]


def test_normalize_media_type():
    assert normalize_media_type("image/JPEG; q=1") == "image/jpeg"
    assert normalize_media_type("") is None
    assert normalize_media_type(None) is None
