from typing import Dict, Optional, Type
from loguru import logger

from .base import (
    EmbeddingProvider,
    StorageProvider
)
from .azure_providers import (
    AzureEmbeddingProvider,
    AzureStorageProvider
)
from .openai_providers import OpenAIEmbeddingProvider
from .custom_providers import LocalStorageProvider
from ..utils.error_handler import ConfigurationException
from ..config.settings import ClipVaultConfig


class ProviderFactory:
    """Factory class for creating provider instances."""

    _embedding_providers: Dict[str, Type[EmbeddingProvider]] = {
        'azure': AzureEmbeddingProvider,
        'openai': OpenAIEmbeddingProvider,
    }

    _storage_providers: Dict[str, Type[StorageProvider]] = {
        'azure': AzureStorageProvider,
        'local': LocalStorageProvider
    }

    @classmethod
    def create_embedding_provider(cls, provider_name: str = None, config: Optional[ClipVaultConfig] = None) -> EmbeddingProvider:
        """
        Create embedding provider instance.

        Args:
            provider_name: Name of the provider (optional, defaults to config)
            config: Configuration to read provider settings from (optional, loaded from the environment)

        Returns:
            EmbeddingProvider instance

        Raises:
            ConfigurationException: If provider is not supported
        """
        config = config or ClipVaultConfig()
        if provider_name is None:
            provider_name = config.embedding.provider

        if provider_name not in cls._embedding_providers:
            raise ConfigurationException(
                f"Unknown embedding provider: {provider_name}. "
                f"Supported providers: {list(cls._embedding_providers.keys())}"
            )

        provider_class = cls._embedding_providers[provider_name]
        logger.info(f"Creating embedding provider: {provider_name}")
        return provider_class(config.embedding.model_dump())

    @classmethod
    def create_storage_provider(cls, provider_name: str = None, config: Optional[ClipVaultConfig] = None) -> StorageProvider:
        """
        Create storage provider instance.

        Args:
            provider_name: Name of the provider (optional, defaults to config)
            config: Configuration to read provider settings from (optional, loaded from the environment)

        Returns:
            StorageProvider instance

        Raises:
            ConfigurationException: If provider is not supported
        """
        config = config or ClipVaultConfig()
        if provider_name is None:
            provider_name = config.storage.provider

        if provider_name not in cls._storage_providers:
            raise ConfigurationException(
                f"Unknown storage provider: {provider_name}. "
                f"Supported providers: {list(cls._storage_providers.keys())}"
            )

        provider_class = cls._storage_providers[provider_name]
        logger.info(f"Creating storage provider: {provider_name}")
        return provider_class(config.storage.model_dump())

    @classmethod
    def get_supported_providers(cls) -> Dict[str, list]:
        """Get list of supported providers by type."""
        return {
            "embedding": list(cls._embedding_providers.keys()),
            "storage": list(cls._storage_providers.keys())
        }

    @classmethod
    def register_embedding_provider(cls, name: str, provider_class: Type[EmbeddingProvider]):
        """Register a new embedding provider."""
        cls._embedding_providers[name] = provider_class
        logger.info(f"Registered embedding provider: {name}")

    @classmethod
    def register_storage_provider(cls, name: str, provider_class: Type[StorageProvider]):
        """Register a new storage provider."""
        cls._storage_providers[name] = provider_class
        logger.info(f"Registered storage provider: {name}")


# Global provider factory instance
provider_factory = ProviderFactory()
