import base64

import httpx
import pytest


PNG_1X1_BASE64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/x8AAwMB/6X5ZQAAAABJRU5ErkJggg=="

VOLCENGINE_KEY = "123e4567-e89b-12d3-a456-426614174000"
GITEE_KEY = "A" * 40
MODELSCOPE_KEY = "ms-test-key"


class RecordingHandler:
    """MockTransport handler that records every request it answers."""

    def __init__(self, handler):
        self.handler = handler
        self.requests = []

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        return self.handler(request)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def png_base64() -> str:
    return PNG_1X1_BASE64


@pytest.fixture
def png_bytes() -> bytes:
    return base64.b64decode(PNG_1X1_BASE64)


@pytest.fixture
def png_data_url() -> str:
    return f"data:image/png;base64,{PNG_1X1_BASE64}"


@pytest.fixture
def mock_upstream():
    """Build a recording handler and the MockTransport that serves it."""
    def build(handler):
        recorder = RecordingHandler(handler)
        return recorder, httpx.MockTransport(recorder)
    return build


@pytest.fixture
def fake_sleep():
    """Awaitable sleep that records requested delays without waiting."""
    delays = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def fake_clock():
    """Monotonic clock advancing one second per reading."""
    state = {"now": 0.0}

    def clock() -> float:
        state["now"] += 1.0
        return state["now"]

    return clock
