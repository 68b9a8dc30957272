"""
Gitee AI provider implementation for the image router.
"""
from typing import List, Optional, Any
import logging

from imgrouter.constants import PROVIDER_GITEE
from imgrouter.core.types import ImageTaskRequest, ImageReference
from imgrouter.errors.exceptions import MalformedResponseError
from imgrouter.providers.base import BaseProvider
from imgrouter.tasks.extraction import decode_element


logger = logging.getLogger(__name__)


class GiteeProvider(BaseProvider):
    """
    Provider implementation for Gitee AI (OpenAI-compatible images API).
    """

    def __init__(self, config, **kwargs):
        super().__init__(PROVIDER_GITEE, config, **kwargs)

    async def generate_images(
        self,
        api_key: str,
        request: ImageTaskRequest,
        context: Optional[Any] = None
    ) -> List[ImageReference]:
        """
        Generate an image; the first input image, if any, is sent as ``image``.

        Raises:
            MalformedResponseError: If the reply carries no ``data`` entries
        """
        model = self.select_model(request.model)
        size = request.size or self.config.default_size

        body = {
            "model": model,
            "prompt": self.prompt_or_default(request.prompt),
        }
        if request.images:
            body["image"] = request.images[0]
        body.update({"size": size, "n": 1, "response_format": "url"})

        logger.debug(f"Gitee request to {self.config.api_url}: model={model} size={size}")
        data = await self.post_json(api_key, body)

        items = data.get("data")
        if not isinstance(items, list) or not items:
            raise MalformedResponseError("Gitee returned no image data", details={"keys": list(data.keys())})

        images = [ref for ref in map(decode_element, items) if ref is not None and not ref.is_empty()]
        logger.info(f"Gitee returned {len(images)} image(s)")
        return images
