from clipvault.providers.base import EmbeddingProvider
from typing import Dict, Any, List
from loguru import logger
from clipvault.utils.error_handler import handle_exceptions, convert_exceptions, ProviderException, ConfigurationException
from openai import AsyncOpenAI


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI embedding provider implementation.

    ``base_url`` lets the same client talk to any OpenAI-compatible embedding
    endpoint (for example DashScope's compatible mode).
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.client = self._initialize_client()

    def _initialize_client(self):
        """Initialize OpenAI client."""
        api_key = self.config.get("api_key")
        if not api_key:
            raise ConfigurationException("Embedding API key is required (EMBEDDING_API_KEY)")
        try:
            return AsyncOpenAI(
                api_key=api_key,
                base_url=self.config.get("base_url") or None,
                timeout=self.config.get("timeout", 200),
                max_retries=self.config.get("max_retries", 2)
            )
        except Exception as e:
            raise ProviderException(f"Failed to initialize OpenAI client: {e}")

    def _request_kwargs(self, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        request = {"model": self.config.get("model", "text-embedding-3-small")}
        if self.config.get("dimensions"):
            request["dimensions"] = self.config["dimensions"]
        request.update(kwargs)
        return request

    @handle_exceptions(retries=3, exceptions=(ProviderException,))
    @convert_exceptions({Exception: ProviderException})
    async def embedding(self, text: str, **kwargs) -> List[float]:
        """Generate embedding using OpenAI."""
        response = await self.client.embeddings.create(input=text, **self._request_kwargs(kwargs))
        return response.data[0].embedding

    @handle_exceptions(retries=3, exceptions=(ProviderException,))
    @convert_exceptions({Exception: ProviderException})
    async def batch_embedding(self, texts: List[str], **kwargs) -> List[List[float]]:
        """Generate embeddings for multiple texts using OpenAI."""
        try:
            response = await self.client.embeddings.create(input=texts, **self._request_kwargs(kwargs))
        except Exception as e:
            logger.error(f"OpenAI batch embedding failed: {e}")
            raise ProviderException(f"OpenAI batch embedding failed: {e}")
        return [item.embedding for item in sorted(response.data, key=lambda item: item.index)]

    async def close(self):
        """Close the embedding client and cleanup resources."""
        if self.client:
            logger.info("Closing OpenAI embedding client")
            await self.client.close()
