"""
Submit-then-poll driver for providers whose image jobs run asynchronously.

A job moves SUBMITTED -> (poll)* -> SUCCEEDED | FAILED | TIMED_OUT. Sleeping
and time measurement are injected so the full poll budget can be exercised
without waiting.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional
import asyncio
import json
import logging
import time

import httpx
from pydantic import BaseModel, Field

from imgrouter.constants import (
    TASK_POLL_INTERVAL, TASK_MAX_POLL_ATTEMPTS, DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_UPLOAD_FIELD, MODELSCOPE_ASYNC_HEADER, MODELSCOPE_TASK_TYPE_HEADER, USER_AGENT,
)
from imgrouter.core.types import ImageReference, JobStatus, JsonDict, TaskResult
from imgrouter.errors.exceptions import (
    GatewayError, MissingReferenceImageError, MalformedResponseError, UpstreamError,
    UpstreamTimeoutError, UpstreamTaskFailedError, PollTimeoutError
)
from imgrouter.images.resolver import ResolvedImage
from imgrouter.tasks.extraction import extract_images
from imgrouter.telemetry.logging import request_logger
from imgrouter.telemetry.tracing import get_tracer


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]

_MEDIA_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


def guess_extension(media_type: str) -> str:
    """Canonical file extension for an image media type, ``png`` if unknown."""
    return _MEDIA_EXTENSIONS.get(media_type, "png")


class PollPolicy(BaseModel):
    """Fixed-interval, bounded polling cadence."""
    interval: float = Field(TASK_POLL_INTERVAL, ge=0, description="Seconds between status queries")
    max_attempts: int = Field(TASK_MAX_POLL_ATTEMPTS, gt=0, description="Status queries before giving up")


class TaskSubmission(BaseModel):
    """A provider request body: JSON, or a multipart form with one image file."""
    path: str
    json_body: Optional[JsonDict] = None
    form: Optional[Dict[str, str]] = None
    upload_field: Optional[str] = None
    upload: Optional[ResolvedImage] = None

    @property
    def is_multipart(self) -> bool:
        return self.upload is not None


def build_submission(
    model: str,
    prompt: str,
    size: str,
    edit: bool,
    reference_image: Optional[ResolvedImage] = None,
    upstream_image: Optional[str] = None,
    upload_field: str = DEFAULT_UPLOAD_FIELD,
) -> TaskSubmission:
    """
    Build the submission for a generation or an edit job.

    Args:
        model: Upstream model name
        prompt: Prompt text
        size: Image size, e.g. ``1024x1024``
        edit: Whether the job is an image edit (multipart upload)
        reference_image: Resolved input image, required for edits
        upstream_image: Optional image string for generation jobs
        upload_field: Multipart field name carrying the edit image

    Raises:
        MissingReferenceImageError: If ``edit`` is set without a reference image
    """
    if edit:
        if reference_image is None:
            raise MissingReferenceImageError(
                "Image edit requires a reference image, but none was provided"
            )
        return TaskSubmission(
            path="/images/edits",
            form={
                "model": model,
                "prompt": prompt,
                "n": "1",
                "size": size,
                "response_format": "url",
            },
            upload_field=upload_field.strip() or DEFAULT_UPLOAD_FIELD,
            upload=reference_image,
        )

    body: JsonDict = {"model": model, "prompt": prompt}
    if upstream_image:
        body["image"] = upstream_image
    body.update({"response_format": "url", "size": size, "n": 1})
    return TaskSubmission(path="/images/generations", json_body=body)


class GenerationJob:
    """Mutable state of one submitted job."""

    def __init__(self, task_id: str, started_at: float):
        self.task_id = task_id
        self.status = JobStatus.PENDING
        self.attempts = 0
        self.started_at = started_at


class TaskOrchestrator:
    """
    Drives one provider job from submission to a terminal state.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        policy: Optional[PollPolicy] = None,
        task_type: Optional[str] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
        request_id: Optional[str] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            client: HTTP client used for every upstream call
            base_url: Provider API root, e.g. ``https://host/v1``
            api_key: Bearer credential
            policy: Poll cadence
            task_type: Value for the task-type discriminator header, if any
            request_timeout: Seconds allowed per upstream call
            sleep: Awaitable sleep, injected by tests
            clock: Monotonic clock in seconds, injected by tests
            request_id: Inbound request id, for log correlation
        """
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.policy = policy or PollPolicy()
        self.task_type = (task_type or "").strip() or None
        self.timeout = httpx.Timeout(request_timeout)
        self.sleep = sleep
        self.clock = clock
        self.request_id = request_id

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "User-Agent": USER_AGENT}

    def _elapsed_ms(self, started_at: float) -> int:
        return int((self.clock() - started_at) * 1000)

    async def run(self, submission: TaskSubmission) -> TaskResult:
        """
        Submit a job and wait for its images.

        Returns:
            Task result; ``images`` may be empty when the provider reports
            success without any recognisable output

        Raises:
            UpstreamError, UpstreamTimeoutError, MalformedResponseError,
            UpstreamTaskFailedError, PollTimeoutError
        """
        started_at = self.clock()
        with get_tracer().start_as_current_span("task.run") as span:
            span.set_attribute("task.path", submission.path)
            data = await self.submit(submission)

            task_id = data.get("task_id")
            if not task_id:
                return self._complete_synchronously(data, started_at)

            job = GenerationJob(str(task_id), started_at)
            span.set_attribute("task.id", job.task_id)
            logger.info(f"Task submitted, task_id={job.task_id}")

            result = await self.poll(job)
            span.set_attribute("task.attempts", result.attempts)
            return result

    async def submit(self, submission: TaskSubmission) -> JsonDict:
        """Send the submission and return its parsed JSON body."""
        headers = {**self._auth_headers(), MODELSCOPE_ASYNC_HEADER: "true"}
        url = f"{self.base_url}{submission.path}"

        if submission.is_multipart:
            upload = submission.upload
            files = {
                submission.upload_field: (
                    f"image.{guess_extension(upload.media_type)}",
                    upload.content,
                    upload.media_type,
                )
            }
            response = await self._send("POST", url, headers=headers, data=submission.form, files=files)
        else:
            response = await self._send("POST", url, headers=headers, json=submission.json_body)

        if not response.is_success:
            raise UpstreamError(
                f"Submit error ({response.status_code}): {response.text}",
                upstream_status=response.status_code,
                body=response.text,
            )
        return self._parse_json(response, "submission")

    async def poll(self, job: GenerationJob) -> TaskResult:
        """
        Query job status until it succeeds, fails, or the attempt budget runs out.

        A non-2xx status query is not terminal: it is logged and the next
        attempt follows after the usual interval. Any other error ends the job;
        it is logged as a failed terminal state and its details gain the task
        id, attempt count and elapsed time.
        """
        try:
            return await self._poll_until_terminal(job)
        except (UpstreamTaskFailedError, PollTimeoutError):
            raise
        except Exception as e:
            elapsed_ms = self._elapsed_ms(job.started_at)
            self._log_terminal(
                "failed", job.task_id, job.attempts, elapsed_ms, level=logging.ERROR, error=str(e)
            )
            if isinstance(e, GatewayError):
                e.details = {
                    **(e.details or {}),
                    "task_id": job.task_id,
                    "attempts": job.attempts,
                    "elapsed_ms": elapsed_ms,
                }
            raise

    async def _poll_until_terminal(self, job: GenerationJob) -> TaskResult:
        for attempt in range(1, self.policy.max_attempts + 1):
            await self.sleep(self.policy.interval)
            job.attempts = attempt

            response = await self._query_status(job)
            if not response.is_success:
                logger.warning(f"Task {job.task_id} poll attempt {attempt} returned {response.status_code}")
                continue

            data = self._parse_json(response, "status")
            job.status = JobStatus.parse(data.get("task_status"))

            if job.status == JobStatus.SUCCEEDED:
                return self._succeed(job, data)
            if job.status == JobStatus.FAILED:
                raise self._task_failed(job, data)

            logger.debug(f"Task {job.task_id} status {data.get('task_status')} (attempt {attempt})")

        elapsed_ms = self._elapsed_ms(job.started_at)
        self._log_terminal("timed_out", job.task_id, job.attempts, elapsed_ms, level=logging.ERROR)
        raise PollTimeoutError(
            f"Task {job.task_id} timed out after {job.attempts} polls",
            details={"task_id": job.task_id, "attempts": job.attempts, "elapsed_ms": elapsed_ms},
        )

    async def _query_status(self, job: GenerationJob) -> httpx.Response:
        url = f"{self.base_url}/tasks/{job.task_id}"
        headers = self._auth_headers()

        if not self.task_type:
            return await self._send("GET", url, headers=headers)

        response = await self._send("GET", url, headers={**headers, MODELSCOPE_TASK_TYPE_HEADER: self.task_type})
        if response.is_success:
            return response

        # Some deployments reject the discriminator; retry once without it.
        logger.debug(f"Task {job.task_id} status query with task type failed ({response.status_code}), retrying without")
        return await self._send("GET", url, headers=headers)

    def _succeed(self, job: GenerationJob, data: JsonDict) -> TaskResult:
        images = extract_images(data)
        if not images:
            logger.warning(f"Task {job.task_id} succeeded but no images were found; keys={list(data.keys())[:30]}")

        elapsed_ms = self._elapsed_ms(job.started_at)
        self._log_terminal("succeeded", job.task_id, job.attempts, elapsed_ms, images=len(images))
        return TaskResult(task_id=job.task_id, images=images, attempts=job.attempts, elapsed_ms=elapsed_ms)

    def _task_failed(self, job: GenerationJob, data: JsonDict) -> UpstreamTaskFailedError:
        elapsed_ms = self._elapsed_ms(job.started_at)
        self._log_terminal("failed", job.task_id, job.attempts, elapsed_ms, level=logging.ERROR)
        return UpstreamTaskFailedError(
            f"Task failed: {json.dumps(data, ensure_ascii=False)}",
            details={"task_id": job.task_id, "attempts": job.attempts, "elapsed_ms": elapsed_ms, "payload": data},
        )

    def _complete_synchronously(self, data: JsonDict, started_at: float) -> TaskResult:
        images: List[ImageReference] = extract_images(data)
        if not images:
            raise MalformedResponseError(
                f"Unexpected response without task_id: {list(data.keys())}",
                details={"keys": list(data.keys())},
            )
        elapsed_ms = self._elapsed_ms(started_at)
        self._log_terminal("succeeded", None, 0, elapsed_ms, images=len(images))
        return TaskResult(task_id=None, images=images, attempts=0, elapsed_ms=elapsed_ms)

    def _log_terminal(
        self,
        state: str,
        task_id: Optional[str],
        attempts: int,
        elapsed_ms: int,
        level: int = logging.INFO,
        images: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        request_logger.log(
            level,
            f"Task {state}: task_id={task_id} attempts={attempts} elapsed_ms={elapsed_ms}",
            extra={
                "request_id": self.request_id,
                "task_id": task_id,
                "task_state": state,
                "attempts": attempts,
                "elapsed_ms": elapsed_ms,
                "image_count": images,
                "error": error,
            },
        )

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, url, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"Upstream request timed out: {method} {url}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Upstream request failed: {method} {url}: {e}") from e

    @staticmethod
    def _parse_json(response: httpx.Response, what: str) -> JsonDict:
        try:
            data = response.json()
        except ValueError:
            raise MalformedResponseError(f"Invalid JSON in {what} response: {response.text[:200]}")
        if not isinstance(data, dict):
            raise MalformedResponseError(f"Expected a JSON object in {what} response")
        return data
