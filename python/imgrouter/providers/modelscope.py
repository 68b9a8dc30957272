"""
ModelScope provider implementation for the image router.

ModelScope runs image jobs asynchronously: the submission returns a task id
that is polled until the job finishes.
"""
from typing import List, Optional, Any
import asyncio
import logging
import time

from imgrouter.config.settings import ModelScopeSettings
from imgrouter.constants import PROVIDER_MODELSCOPE
from imgrouter.core.types import ImageTaskRequest, ImageReference
from imgrouter.images.resolver import resolve_image
from imgrouter.providers.base import BaseProvider
from imgrouter.tasks.orchestrator import (
    TaskOrchestrator, PollPolicy, build_submission, Sleep, Clock
)


logger = logging.getLogger(__name__)


def is_image_edit_model(model: str) -> bool:
    return "image-edit" in model.lower()


class ModelscopeProvider(BaseProvider):
    """
    Provider implementation for the ModelScope inference API.
    """

    def __init__(
        self,
        config: ModelScopeSettings,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
        **kwargs
    ):
        super().__init__(PROVIDER_MODELSCOPE, config, **kwargs)
        self.sleep = sleep
        self.clock = clock

    @property
    def poll_policy(self) -> PollPolicy:
        return PollPolicy(interval=self.config.poll_interval, max_attempts=self.config.max_poll_attempts)

    async def generate_images(
        self,
        api_key: str,
        request: ImageTaskRequest,
        context: Optional[Any] = None
    ) -> List[ImageReference]:
        """
        Submit a generation or edit job and wait for it.

        Edit models upload the first caller image as a multipart file. The
        image resolved during preparation is reused; in ``passthrough`` mode
        nothing was resolved yet, so it is resolved here, before any call to
        ModelScope.
        """
        model = self.select_model(request.model)
        size = request.size or self.config.default_size
        edit = is_image_edit_model(model)

        reference_image = None
        if edit and request.resolved_images:
            reference_image = request.resolved_images[0]
        elif edit and request.source_images:
            reference_image = await resolve_image(request.source_images[0], self.resolve_options())

        submission = build_submission(
            model=model,
            prompt=self.prompt_or_default(request.prompt),
            size=size,
            edit=edit,
            reference_image=reference_image,
            upstream_image=request.images[0] if request.images else None,
            upload_field=self.config.upload_field,
        )
        logger.info(f"ModelScope {'edit' if edit else 'generation'} job: model={model} size={size}")

        async with self.create_client() as client:
            orchestrator = TaskOrchestrator(
                client,
                base_url=self.config.api_url,
                api_key=api_key,
                policy=self.poll_policy,
                task_type=self.config.task_type,
                request_timeout=self.request_timeout,
                sleep=self.sleep,
                clock=self.clock,
                request_id=getattr(context, "request_id", None),
            )
            result = await orchestrator.run(submission)

        return result.images
