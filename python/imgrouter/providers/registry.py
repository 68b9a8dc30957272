"""
Provider registry and credential-shape detection for the image router.
"""
from typing import Dict, List, Optional
import logging
import re

import httpx

from imgrouter.config.settings import Settings
from imgrouter.constants import PROVIDER_VOLCENGINE, PROVIDER_GITEE, PROVIDER_MODELSCOPE
from imgrouter.providers.base import Provider


logger = logging.getLogger(__name__)

_UUID_KEY = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_GITEE_KEY = re.compile(r"^[a-zA-Z0-9]{30,60}$")


def detect_provider(api_key: Optional[str]) -> Optional[str]:
    """
    Work out which provider issued a credential from its shape.

    Args:
        api_key: Bearer credential sent by the caller

    Returns:
        Provider name, or None if the shape is not recognised
    """
    if not api_key:
        return None

    if api_key.startswith("ms-"):
        provider = PROVIDER_MODELSCOPE
    elif _UUID_KEY.match(api_key):
        provider = PROVIDER_VOLCENGINE
    elif _GITEE_KEY.match(api_key):
        provider = PROVIDER_GITEE
    else:
        provider = None

    logger.debug(f"Credential {api_key[:4]}... routed to {provider or 'unknown'}")
    return provider


class ProviderRegistry:
    """
    Registry for managing providers in the image router.
    """

    def __init__(self):
        """Initialize the provider registry."""
        self._providers: Dict[str, Provider] = {}

    def register_provider(self, provider_name: str, provider: Provider) -> None:
        """
        Register a provider instance.

        Args:
            provider_name: Name of the provider
            provider: Provider instance
        """
        self._providers[provider_name] = provider
        logger.debug(f"Registered provider: {provider_name}")

    def get_provider(self, provider_name: str) -> Optional[Provider]:
        """
        Get a provider instance.

        Args:
            provider_name: Name of the provider

        Returns:
            Provider instance if found, None otherwise
        """
        provider = self._providers.get(provider_name)
        if provider is None:
            logger.warning(f"Provider not found: {provider_name}")
        return provider

    def list_providers(self) -> List[str]:
        """
        List all registered providers.

        Returns:
            Sorted provider names
        """
        return sorted(self._providers.keys())

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ProviderRegistry":
        """
        Build a registry holding the three built-in providers.

        Args:
            settings: Application settings
            transport: httpx transport shared by every provider, for tests
        """
        from imgrouter.providers.volcengine import VolcengineProvider
        from imgrouter.providers.gitee import GiteeProvider
        from imgrouter.providers.modelscope import ModelscopeProvider

        common = {
            "image_settings": settings.image,
            "request_timeout": settings.api_timeout,
            "enforce_supported_models": settings.enforce_supported_models,
            "transport": transport,
        }

        registry = cls()
        registry.register_provider(PROVIDER_VOLCENGINE, VolcengineProvider(settings.volcengine, **common))
        registry.register_provider(PROVIDER_GITEE, GiteeProvider(settings.gitee, **common))
        registry.register_provider(PROVIDER_MODELSCOPE, ModelscopeProvider(settings.modelscope, **common))
        return registry
