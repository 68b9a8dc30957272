"""
Core executor implementation for the image router.
"""
from typing import Dict, List, Optional, Any
import logging
import time
import uuid

from imgrouter.config.settings import Settings
from imgrouter.constants import EMPTY_RESULT_MESSAGE
from imgrouter.core.normalizer import normalize_chat_request, extract_prompt_and_images
from imgrouter.core.types import (
    ChatCompletionResponse, ChatCompletionResponseChoice, ChatMessage,
    ImageReference, ImageTaskRequest, NormalizedChatRequest
)
from imgrouter.errors.exceptions import AuthenticationError, ProviderNotFoundError
from imgrouter.images.inputs import prepare_images_for_upstream
from imgrouter.providers.base import BaseProvider
from imgrouter.providers.registry import ProviderRegistry, detect_provider
from imgrouter.telemetry.logging import RequestLoggerAdapter, request_logger


logger = logging.getLogger(__name__)

UNKNOWN_MODEL = "unknown-model"


class RequestContext:
    """Context for a request execution."""

    def __init__(
        self,
        request_id: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize request context.

        Args:
            request_id: Unique ID for this request
            headers: HTTP headers for the request
            metadata: Additional metadata for the request
        """
        self.request_id = request_id or str(uuid.uuid4())
        self.headers = headers or {}
        self.metadata = metadata or {}
        self.start_time = time.time()
        self.provider: Optional[str] = None
        self.log = RequestLoggerAdapter(request_logger, {"request_id": self.request_id})

    def elapsed_ms(self) -> int:
        """Get elapsed time in milliseconds."""
        return int((time.time() - self.start_time) * 1000)


def render_markdown(images: List[ImageReference]) -> str:
    """Markdown image links, one per non-empty image, blank-line separated."""
    links = [image.to_markdown() for image in images if not image.is_empty()]
    return "\n\n".join(links) if links else EMPTY_RESULT_MESSAGE


class RequestExecutor:
    """
    Executor for image router requests.
    Detects the provider, prepares images, dispatches and renders the reply.
    """

    def __init__(self, settings: Settings, registry: ProviderRegistry):
        """
        Initialize the request executor.

        Args:
            settings: Application settings
            registry: Providers keyed by name
        """
        self.settings = settings
        self.registry = registry

    def select_provider(self, api_key: str) -> BaseProvider:
        """
        Pick the provider that issued ``api_key``.

        Raises:
            AuthenticationError: If the credential shape is not recognised
            ProviderNotFoundError: If the detected provider is not registered
        """
        provider_name = detect_provider(api_key)
        if not provider_name:
            raise AuthenticationError("Invalid API key format")

        provider = self.registry.get_provider(provider_name)
        if provider is None:
            raise ProviderNotFoundError(f"Provider not found: {provider_name}")
        return provider

    async def build_task(self, provider: BaseProvider, request: NormalizedChatRequest) -> ImageTaskRequest:
        """Turn a normalized chat request into a provider task."""
        prompt, references = extract_prompt_and_images(request.messages)
        prepared = await prepare_images_for_upstream(
            references,
            provider.image_input_mode,
            provider.image_base64_format,
            provider.resolve_options(),
        )
        return ImageTaskRequest(
            model=request.model,
            size=request.size,
            prompt=prompt,
            images=prepared.upstream,
            source_images=references,
            resolved_images=prepared.resolved,
        )

    async def execute_chat_completion(
        self,
        api_key: str,
        body: Any,
        context: Optional[RequestContext] = None,
    ) -> ChatCompletionResponse:
        """
        Execute a chat completion request.

        Args:
            api_key: Caller credential, without the ``Bearer`` prefix
            body: Parsed JSON chat body
            context: Request execution context

        Returns:
            Chat completion whose assistant content is Markdown image links
        """
        context = context or RequestContext()
        provider = self.select_provider(api_key)
        context.provider = provider.name

        request = normalize_chat_request(body)
        model_name = request.model or UNKNOWN_MODEL

        try:
            context.log.info(
                "Image request",
                extra={
                    "provider": provider.name,
                    "model": model_name,
                    "messages_count": len(request.messages),
                    "stream": request.stream,
                }
            )

            task = await self.build_task(provider, request)
            images = await provider.generate_images(api_key, task, context)

        except Exception as e:
            context.log.error(
                f"Image request error: {e}",
                extra={
                    "provider": context.provider,
                    "model": model_name,
                    "error": str(e),
                    "latency_ms": context.elapsed_ms(),
                }
            )
            raise

        context.log.info(
            "Image request success",
            extra={
                "provider": context.provider,
                "model": model_name,
                "latency_ms": context.elapsed_ms(),
                "images_count": len(images),
            }
        )

        return ChatCompletionResponse(
            model=model_name,
            choices=[ChatCompletionResponseChoice(message=ChatMessage(content=render_markdown(images)))],
        )
