from .embedding_provider import OpenAIEmbeddingProvider

__all__ = [
    "OpenAIEmbeddingProvider",
]
