"""
Preparation of caller images before they are forwarded to a provider.
"""
from typing import List, NamedTuple, Optional
import logging

from imgrouter.config.settings import ImageInputMode, ImageBase64Format
from imgrouter.images.resolver import ResolveOptions, ResolvedImage, resolve_image


logger = logging.getLogger(__name__)


class PreparedImages(NamedTuple):
    """Upstream image strings plus the images resolved to produce them."""
    upstream: List[str]
    resolved: List[ResolvedImage]


async def prepare_images_for_upstream(
    references: List[str],
    mode: ImageInputMode,
    base64_format: ImageBase64Format = ImageBase64Format.DATA_URL,
    options: Optional[ResolveOptions] = None,
) -> PreparedImages:
    """
    Turn caller image references into the form sent upstream.

    Args:
        references: Image references from the last user message
        mode: ``passthrough`` forwards references as-is, ``fetch_to_base64``
            resolves each one
        base64_format: Data URL or bare base64 text, for ``fetch_to_base64``
        options: Resolution limits

    Returns:
        One upstream image string per non-empty reference, in order, and the
        resolved images (empty in ``passthrough`` mode)
    """
    usable = [r for r in references if isinstance(r, str) and r.strip()]
    if mode == ImageInputMode.PASSTHROUGH:
        return PreparedImages(upstream=usable, resolved=[])

    resolved = [await resolve_image(reference, options) for reference in usable]
    if base64_format == ImageBase64Format.RAW_BASE64:
        upstream = [image.base64 for image in resolved]
    else:
        upstream = [image.data_url for image in resolved]

    logger.debug(f"Prepared {len(upstream)} image(s) as {base64_format.value}")
    return PreparedImages(upstream=upstream, resolved=resolved)
