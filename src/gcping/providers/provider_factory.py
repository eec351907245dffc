from typing import Any, ClassVar

from gcping.core.utils import setup_logger
from gcping.providers.gcp_provider import GCPProvider
from gcping.providers.provider_base import CloudProvider

logger = setup_logger(name="providers.provider_factory")


class CloudProviderFactory:
    _instances: ClassVar[dict[str, CloudProvider]] = {}

    @classmethod
    def get_provider(
        cls, provider_name: str, api_key: str | None = None, **options: Any
    ) -> CloudProvider | None:
        """
        Get a provider instance. Returns cached instance if available.
        Args:
            provider_name: Name of the provider ('gcp')
            api_key: Access token for the provider
            options: Provider specific settings (project, image, network...)
        Returns:
            CloudProvider instance or None if provider not found
        """
        provider_name = provider_name.lower()

        if provider_name in cls._instances:
            return cls._instances[provider_name]

        providers = {"gcp": GCPProvider}
        provider_class = providers.get(provider_name)
        if not provider_class:
            return None

        try:
            provider = provider_class(api_key, **options)
            cls._instances[provider_name] = provider
            return provider
        except ValueError as e:
            # Missing credentials or project
            logger.error(f"Error creating provider: {e}")
            return None

    @classmethod
    def clear_cache(cls):
        """Clear all cached provider instances"""
        cls._instances.clear()
