from .embedding_provider import EmbeddingProvider
from .storage_provider import StorageProvider

__all__ = [
    'EmbeddingProvider',
    'StorageProvider',
]
