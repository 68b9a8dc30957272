"""
Base provider implementation for the image router.
"""
from typing import Dict, List, Optional, Any, Protocol, runtime_checkable
import logging
from abc import ABC, abstractmethod

import httpx

from imgrouter.config.settings import (
    ProviderSettings, ImageSettings, ImageInputMode, ImageBase64Format
)
from imgrouter.constants import DEFAULT_PROMPT, DEFAULT_REQUEST_TIMEOUT, USER_AGENT
from imgrouter.core.types import ImageTaskRequest, ImageReference, JsonDict
from imgrouter.errors.exceptions import (
    UpstreamError, UpstreamTimeoutError, MalformedResponseError
)
from imgrouter.images.resolver import ResolveOptions


logger = logging.getLogger(__name__)


@runtime_checkable
class Provider(Protocol):
    """Protocol defining the interface for all providers."""

    @property
    def name(self) -> str:
        """Get the provider name."""
        ...

    async def generate_images(
        self,
        api_key: str,
        request: ImageTaskRequest,
        context: Optional[Any] = None
    ) -> List[ImageReference]:
        """Generate or edit images."""
        ...


class BaseProvider(ABC):
    """
    Base class for all providers.
    Implements common functionality and defines the interface for provider-specific implementations.
    """

    def __init__(
        self,
        provider_name: str,
        config: ProviderSettings,
        image_settings: Optional[ImageSettings] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        enforce_supported_models: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the provider.

        Args:
            provider_name: Name of the provider
            config: Endpoint and model defaults
            image_settings: Global image handling settings
            request_timeout: Seconds allowed per upstream call
            enforce_supported_models: Replace unlisted models with the default
            transport: httpx transport override, used by tests
        """
        self._name = provider_name
        self.config = config
        self.image_settings = image_settings or ImageSettings()
        self.request_timeout = request_timeout
        self.enforce_supported_models = enforce_supported_models
        self.transport = transport

    @property
    def name(self) -> str:
        """Get the provider name."""
        return self._name

    @property
    def image_input_mode(self) -> ImageInputMode:
        """Per-provider override, else the global mode."""
        return self.config.image_input_mode or self.image_settings.input_mode

    @property
    def image_base64_format(self) -> ImageBase64Format:
        """Per-provider override, else the global format."""
        return self.config.image_base64_format or self.image_settings.base64_format

    def resolve_options(self) -> ResolveOptions:
        """Resolution limits for images this provider has to fetch."""
        return ResolveOptions(
            timeout=self.image_settings.fetch_timeout,
            max_bytes=self.image_settings.max_bytes,
            allow_private_network=self.image_settings.allow_private_network,
            transport=self.transport,
        )

    @abstractmethod
    async def generate_images(
        self,
        api_key: str,
        request: ImageTaskRequest,
        context: Optional[Any] = None
    ) -> List[ImageReference]:
        """
        Generate or edit images.

        Args:
            api_key: Caller credential, forwarded upstream
            request: Prompt, model, size and images
            context: Request context

        Returns:
            Generated image references, possibly empty
        """
        pass

    def select_model(self, requested: Optional[str]) -> str:
        """
        Pick the upstream model for a request.

        Args:
            requested: Model named by the caller

        Returns:
            The requested model, or the provider default when none was given
            or the model is unlisted and listing is enforced
        """
        model = (requested or "").strip()
        if not model:
            return self.config.default_model
        if self.enforce_supported_models and model not in self.config.supported_models:
            logger.warning(
                f"{self.name}: model {model} is not in supported_models, "
                f"falling back to {self.config.default_model}"
            )
            return self.config.default_model
        return model

    @staticmethod
    def prompt_or_default(prompt: str) -> str:
        return prompt or DEFAULT_PROMPT

    def create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=httpx.Timeout(self.request_timeout))

    def prepare_headers(self, api_key: str, request_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """
        Prepare headers for provider API requests.

        Args:
            api_key: Bearer credential
            request_headers: Additional headers to include

        Returns:
            Prepared headers
        """
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "User-Agent": USER_AGENT,
        }

        if request_headers:
            headers.update(request_headers)

        return headers

    async def post_json(self, api_key: str, body: JsonDict, headers: Optional[Dict[str, str]] = None) -> JsonDict:
        """
        POST a JSON body to the provider endpoint and parse the JSON reply.

        Raises:
            UpstreamError: On a non-2xx reply or transport failure
            UpstreamTimeoutError: If the call runs out of time
            MalformedResponseError: If the reply is not a JSON object
        """
        async with self.create_client() as client:
            try:
                response = await client.post(
                    self.config.api_url, json=body, headers=self.prepare_headers(api_key, headers)
                )
            except httpx.TimeoutException as e:
                raise UpstreamTimeoutError(f"{self.name} request timed out") from e
            except httpx.HTTPError as e:
                raise UpstreamError(f"{self.name} request failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(
                f"{self.name} API error ({response.status_code}): {response.text}",
                upstream_status=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError:
            raise MalformedResponseError(f"{self.name} returned invalid JSON: {response.text[:200]}")
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{self.name} returned a non-object JSON body")
        return data
