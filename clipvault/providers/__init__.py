"""Provider system for ClipVault."""

from .base import (
    EmbeddingProvider,
    StorageProvider
)
from .factory import ProviderFactory, provider_factory
from .azure_providers import (
    AzureEmbeddingProvider,
    AzureStorageProvider
)
from .openai_providers import OpenAIEmbeddingProvider
from .custom_providers import LocalStorageProvider

__all__ = [
    # Base classes
    'EmbeddingProvider',
    'StorageProvider',
    # Factory
    'ProviderFactory',
    'provider_factory',
    # Azure providers
    'AzureEmbeddingProvider',
    'AzureStorageProvider',
    # OpenAI providers
    'OpenAIEmbeddingProvider',
    # Custom providers
    'LocalStorageProvider',
]
