import logging

import httpx
import pytest

from imgrouter.constants import MODELSCOPE_ASYNC_HEADER, MODELSCOPE_TASK_TYPE_HEADER
from imgrouter.errors.exceptions import (
    MissingReferenceImageError, MalformedResponseError, PollTimeoutError,
    UpstreamError, UpstreamTaskFailedError
)
from imgrouter.images.resolver import ResolvedImage
from imgrouter.tasks.orchestrator import (
    PollPolicy, TaskOrchestrator, build_submission, guess_extension
)
from imgrouter.telemetry.logging import request_logger


BASE_URL = "https://api.example.com/v1"


def task_server(statuses, submit_body=None, status_code_for=None):
    """Upstream double: submission returns a task id, polls walk ``statuses``."""
    state = {"polls": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json=submit_body or {"task_id": "t-1"})

        if status_code_for is not None:
            code = status_code_for(request)
            if code != 200:
                return httpx.Response(code, text="nope")

        state["polls"] += 1
        status = statuses[min(state["polls"], len(statuses)) - 1]
        body = {"task_status": status}
        if status == "SUCCEED":
            body["output_images"] = ["https://img/out.png"]
        return httpx.Response(200, json=body)

    handler.state = state
    return handler


def make_orchestrator(transport, fake_sleep, fake_clock, **kwargs):
    client = httpx.AsyncClient(transport=transport)
    return TaskOrchestrator(
        client,
        base_url=BASE_URL,
        api_key="ms-key",
        policy=kwargs.pop("policy", PollPolicy(interval=5, max_attempts=60)),
        sleep=fake_sleep,
        clock=fake_clock,
        **kwargs,
    )


def generation():
    return build_submission("Qwen/Qwen-Image", "a cat", "1024x1024", edit=False)


@pytest.fixture
def terminal_records(caplog, monkeypatch):
    """Terminal job records as (state, task_id, attempts, elapsed_ms)."""
    monkeypatch.setattr(request_logger, "propagate", False)
    monkeypatch.setattr(request_logger, "disabled", False)
    request_logger.addHandler(caplog.handler)
    caplog.set_level(logging.INFO, logger=request_logger.name)

    def records():
        return [
            (r.task_state, r.task_id, r.attempts, r.elapsed_ms)
            for r in caplog.records
            if r.name == request_logger.name and hasattr(r, "task_state")
        ]

    yield records
    request_logger.removeHandler(caplog.handler)


async def test_pending_then_success_polls_three_times(mock_upstream, fake_sleep, fake_clock):
    recorder, transport = mock_upstream(task_server(["PENDING", "PENDING", "SUCCEED"]))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    result = await orchestrator.run(generation())

    assert result.task_id == "t-1"
    assert result.attempts == 3
    assert [image.url for image in result.images] == ["https://img/out.png"]
    assert fake_sleep.delays == [5, 5, 5]
    assert [r.method for r in recorder.requests] == ["POST", "GET", "GET", "GET"]
    assert recorder.requests[1].url == f"{BASE_URL}/tasks/t-1"


async def test_submission_is_async_mode(mock_upstream, fake_sleep, fake_clock):
    recorder, transport = mock_upstream(task_server(["SUCCEED"]))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    await orchestrator.run(generation())

    submit = recorder.requests[0]
    assert submit.url == f"{BASE_URL}/images/generations"
    assert submit.headers[MODELSCOPE_ASYNC_HEADER] == "true"
    assert submit.headers["Authorization"] == "Bearer ms-key"


async def test_exhausted_attempts_raise_poll_timeout(mock_upstream, fake_sleep, fake_clock):
    recorder, transport = mock_upstream(task_server(["PENDING"]))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    with pytest.raises(PollTimeoutError) as exc_info:
        await orchestrator.run(generation())

    assert recorder.calls == 1 + 60
    assert len(fake_sleep.delays) == 60
    details = exc_info.value.details
    assert details["task_id"] == "t-1"
    assert details["attempts"] == 60
    assert details["elapsed_ms"] > 0
    assert exc_info.value.status_code == 504


async def test_failure_is_terminal_immediately(mock_upstream, fake_sleep, fake_clock):
    recorder, transport = mock_upstream(task_server(["FAILED"]))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    with pytest.raises(UpstreamTaskFailedError) as exc_info:
        await orchestrator.run(generation())

    assert recorder.calls == 2
    assert exc_info.value.details["attempts"] == 1
    assert exc_info.value.details["payload"] == {"task_status": "FAILED"}


async def test_unknown_status_keeps_polling(mock_upstream, fake_sleep, fake_clock):
    _, transport = mock_upstream(task_server(["RUNNING", "weird", "SUCCEED"]))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    result = await orchestrator.run(generation())

    assert result.attempts == 3


async def test_status_query_retries_without_task_type_header(mock_upstream, fake_sleep, fake_clock):
    def reject_task_type(request):
        return 400 if MODELSCOPE_TASK_TYPE_HEADER in request.headers else 200

    recorder, transport = mock_upstream(task_server(["SUCCEED"], status_code_for=reject_task_type))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock, task_type="image_generation")

    result = await orchestrator.run(generation())

    assert result.attempts == 1
    polls = [r for r in recorder.requests if r.method == "GET"]
    assert polls[0].headers[MODELSCOPE_TASK_TYPE_HEADER] == "image_generation"
    assert MODELSCOPE_TASK_TYPE_HEADER not in polls[1].headers


async def test_non_success_poll_is_not_terminal(mock_upstream, fake_sleep, fake_clock):
    answers = iter([500, 200])

    def flaky(request):
        return next(answers)

    _, transport = mock_upstream(task_server(["SUCCEED"], status_code_for=flaky))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    result = await orchestrator.run(generation())

    assert result.attempts == 2
    assert len(fake_sleep.delays) == 2


async def test_submission_rejected(mock_upstream, fake_sleep, fake_clock):
    _, transport = mock_upstream(lambda request: httpx.Response(401, text="bad key"))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    with pytest.raises(UpstreamError) as exc_info:
        await orchestrator.run(generation())

    assert exc_info.value.upstream_status == 401
    assert fake_sleep.delays == []


async def test_synchronous_reply_skips_polling(mock_upstream, fake_sleep, fake_clock):
    recorder, transport = mock_upstream(
        lambda request: httpx.Response(200, json={"images": [{"url": "https://img/now.png"}]})
    )
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    result = await orchestrator.run(generation())

    assert result.task_id is None
    assert result.attempts == 0
    assert result.images[0].url == "https://img/now.png"
    assert recorder.calls == 1
    assert fake_sleep.delays == []


async def test_synchronous_reply_without_images_is_malformed(mock_upstream, fake_sleep, fake_clock):
    _, transport = mock_upstream(lambda request: httpx.Response(200, json={"request_id": "r"}))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    with pytest.raises(MalformedResponseError):
        await orchestrator.run(generation())


async def test_success_without_images_returns_empty_list(mock_upstream, fake_sleep, fake_clock):
    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"task_id": "t-2"})
        return httpx.Response(200, json={"task_status": "SUCCEED"})

    _, transport = mock_upstream(handler)
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    result = await orchestrator.run(generation())

    assert result.images == []


async def test_non_json_status_is_malformed(mock_upstream, fake_sleep, fake_clock):
    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"task_id": "t-3"})
        return httpx.Response(200, text="<html>")

    _, transport = mock_upstream(handler)
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    with pytest.raises(MalformedResponseError):
        await orchestrator.run(generation())


def test_edit_without_reference_image_is_rejected():
    with pytest.raises(MissingReferenceImageError):
        build_submission("Qwen/Qwen-Image-Edit", "make it blue", "1024x1024", edit=True)


def test_generation_submission_body():
    submission = build_submission(
        "Qwen/Qwen-Image", "a cat", "512x512", edit=False, upstream_image="data:image/png;base64,QUJD"
    )

    assert submission.path == "/images/generations"
    assert not submission.is_multipart
    assert submission.json_body == {
        "model": "Qwen/Qwen-Image",
        "prompt": "a cat",
        "image": "data:image/png;base64,QUJD",
        "response_format": "url",
        "size": "512x512",
        "n": 1,
    }


async def test_edit_submission_is_multipart(mock_upstream, fake_sleep, fake_clock, png_bytes):
    recorder, transport = mock_upstream(task_server(["SUCCEED"]))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)
    image = ResolvedImage.from_bytes("data:...", "image/png", png_bytes)

    submission = build_submission(
        "Qwen/Qwen-Image-Edit", "make it blue", "1024x1024", edit=True,
        reference_image=image, upload_field="image",
    )
    await orchestrator.run(submission)

    submit = recorder.requests[0]
    assert submit.url == f"{BASE_URL}/images/edits"
    assert submit.headers["content-type"].startswith("multipart/form-data")
    assert b'name="image"; filename="image.png"' in submit.content
    assert b'name="prompt"' in submit.content
    assert png_bytes in submit.content


def test_guess_extension():
    assert guess_extension("image/jpeg") == "jpg"
    assert guess_extension("image/webp") == "webp"
    assert guess_extension("image/x-unknown") == "png"


async def test_success_is_logged_as_terminal(mock_upstream, fake_sleep, fake_clock, terminal_records):
    _, transport = mock_upstream(task_server(["PENDING", "SUCCEED"]))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    await orchestrator.run(generation())

    [(state, task_id, attempts, elapsed_ms)] = terminal_records()
    assert (state, task_id, attempts) == ("succeeded", "t-1", 2)
    assert elapsed_ms > 0


async def test_failure_is_logged_as_terminal(mock_upstream, fake_sleep, fake_clock, terminal_records):
    _, transport = mock_upstream(task_server(["FAILED"]))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    with pytest.raises(UpstreamTaskFailedError):
        await orchestrator.run(generation())

    [(state, task_id, attempts, elapsed_ms)] = terminal_records()
    assert (state, task_id, attempts) == ("failed", "t-1", 1)
    assert elapsed_ms > 0


async def test_poll_timeout_is_logged_as_terminal(mock_upstream, fake_sleep, fake_clock, terminal_records):
    _, transport = mock_upstream(task_server(["PENDING"]))
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock, policy=PollPolicy(interval=5, max_attempts=3))

    with pytest.raises(PollTimeoutError):
        await orchestrator.run(generation())

    [(state, task_id, attempts, _)] = terminal_records()
    assert (state, task_id, attempts) == ("timed_out", "t-1", 3)


async def test_malformed_status_is_logged_as_terminal(mock_upstream, fake_sleep, fake_clock, terminal_records):
    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"task_id": "x"})
        return httpx.Response(200, text="<html>")

    _, transport = mock_upstream(handler)
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    with pytest.raises(MalformedResponseError) as exc_info:
        await orchestrator.run(generation())

    [(state, task_id, attempts, elapsed_ms)] = terminal_records()
    assert (state, task_id, attempts) == ("failed", "x", 1)
    assert elapsed_ms > 0
    assert exc_info.value.details["task_id"] == "x"
    assert exc_info.value.details["attempts"] == 1


async def test_status_transport_error_is_logged_as_terminal(mock_upstream, fake_sleep, fake_clock, terminal_records):
    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"task_id": "t-9"})
        raise httpx.ConnectError("connection refused", request=request)

    _, transport = mock_upstream(handler)
    orchestrator = make_orchestrator(transport, fake_sleep, fake_clock)

    with pytest.raises(UpstreamError) as exc_info:
        await orchestrator.run(generation())

    [(state, task_id, attempts, _)] = terminal_records()
    assert (state, task_id, attempts) == ("failed", "t-9", 1)
    assert exc_info.value.details["task_id"] == "t-9"
    assert exc_info.value.details["elapsed_ms"] > 0
