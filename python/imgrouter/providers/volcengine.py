"""
VolcEngine (Ark) provider implementation for the image router.
"""
from typing import List, Optional, Any
import logging

from imgrouter.constants import PROVIDER_VOLCENGINE
from imgrouter.core.types import ImageTaskRequest, ImageReference
from imgrouter.providers.base import BaseProvider
from imgrouter.tasks.extraction import decode_element


logger = logging.getLogger(__name__)


class VolcengineProvider(BaseProvider):
    """
    Provider implementation for VolcEngine Ark image generation.
    Synchronous: the generation call returns image URLs directly.
    """

    def __init__(self, config, **kwargs):
        super().__init__(PROVIDER_VOLCENGINE, config, **kwargs)

    async def generate_images(
        self,
        api_key: str,
        request: ImageTaskRequest,
        context: Optional[Any] = None
    ) -> List[ImageReference]:
        model = self.select_model(request.model)
        size = request.size or self.config.default_size

        body = {
            "model": model,
            "prompt": self.prompt_or_default(request.prompt),
            "image": request.images,
            "response_format": "url",
            "size": size,
            "seed": -1,
            "stream": False,
            "watermark": False,
        }
        logger.info(f"VolcEngine generation: model={model} size={size} images={len(request.images)}")

        data = await self.post_json(api_key, body, headers={"Connection": "close"})

        items = data.get("data") if isinstance(data.get("data"), list) else []
        images = [ref for ref in map(decode_element, items) if ref is not None and not ref.is_empty()]
        logger.info(f"VolcEngine returned {len(images)} image(s)")
        return images
