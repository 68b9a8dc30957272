import httpx
import pytest

from imgrouter.errors.exceptions import (
    InvalidReferenceError, UnsupportedEncodingError, InvalidMediaTypeError,
    InvalidCharacterError, TooLargeError, UnsupportedSchemeError, BlockedBySsrfPolicyError
)
from imgrouter.images.resolver import ResolveOptions, resolve_image


async def test_resolves_data_url(png_data_url, png_bytes, png_base64):
    image = await resolve_image(png_data_url)

    assert image.media_type == "image/png"
    assert image.content == png_bytes
    assert image.size == 67
    assert image.base64 == png_base64
    assert image.data_url == png_data_url
    assert image.source == png_data_url


async def test_data_url_media_type_is_normalized(png_base64):
    image = await resolve_image(f"data:IMAGE/PNG;base64,{png_base64}")
    assert image.media_type == "image/png"


@pytest.mark.parametrize("reference, error", [
    ("", InvalidReferenceError),
    ("   ", InvalidReferenceError),
    (None, InvalidReferenceError),
    (42, InvalidReferenceError),
    ("data:image/png;base64", InvalidReferenceError),
    ("data:image/png,plain", UnsupportedEncodingError),
    ("data:text/plain;base64,QUJD", InvalidMediaTypeError),
    ("data:image/png;base64,QU*D", InvalidCharacterError),
    ("not a url", InvalidReferenceError),
    ("ftp://example.com/a.png", UnsupportedSchemeError),
    ("file:///etc/passwd", UnsupportedSchemeError),
])
async def test_rejects_bad_references(reference, error):
    with pytest.raises(error):
        await resolve_image(reference)


async def test_data_url_over_ceiling(png_data_url):
    with pytest.raises(TooLargeError):
        await resolve_image(png_data_url, ResolveOptions(max_bytes=10))


@pytest.mark.parametrize("url", [
    "http://192.168.1.5/a.png",
    "http://localhost:8080/a.png",
    "http://[::1]/a.png",
    "http://169.254.169.254/latest/meta-data",
])
async def test_private_hosts_are_blocked_before_any_request(mock_upstream, url):
    recorder, transport = mock_upstream(lambda request: httpx.Response(200))

    with pytest.raises(BlockedBySsrfPolicyError) as exc_info:
        await resolve_image(url, ResolveOptions(transport=transport))

    assert exc_info.value.status_code == 403
    assert recorder.calls == 0


async def test_private_hosts_allowed_when_configured(mock_upstream, png_bytes):
    recorder, transport = mock_upstream(
        lambda request: httpx.Response(200, headers={"content-type": "image/png"}, content=png_bytes)
    )

    image = await resolve_image(
        "http://192.168.1.5/a.png",
        ResolveOptions(allow_private_network=True, transport=transport),
    )

    assert image.content == png_bytes
    assert recorder.calls == 1


async def test_resolves_remote_url(mock_upstream, png_bytes, png_data_url):
    _, transport = mock_upstream(
        lambda request: httpx.Response(200, headers={"content-type": "image/png"}, content=png_bytes)
    )

    image = await resolve_image("https://cdn.example.com/a.png", ResolveOptions(transport=transport))

    assert image.source == "https://cdn.example.com/a.png"
    assert image.data_url == png_data_url
