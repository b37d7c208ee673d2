from .embedding_provider import AzureEmbeddingProvider
from .storage_provider import AzureStorageProvider

__all__ = [
    "AzureEmbeddingProvider",
    "AzureStorageProvider",
]
