from clipvault.providers.base import EmbeddingProvider
from typing import Dict, Any, List
from azure.identity.aio import get_bearer_token_provider
from loguru import logger
from clipvault.utils.error_handler import ProviderException, ConfigurationException
from openai import AsyncAzureOpenAI
from clipvault.utils.error_handler import handle_exceptions, convert_exceptions
from clipvault.providers.credentials import AzureCredentials


class AzureEmbeddingProvider(EmbeddingProvider):
    """Azure OpenAI embedding provider implementation."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.credential = None
        self.client = self._initialize_client()

    def _initialize_client(self):
        """Initialize Azure OpenAI client."""
        endpoint = self.config.get("endpoint") or self.config.get("base_url")
        if not endpoint:
            raise ConfigurationException("Azure OpenAI endpoint is required (EMBEDDING_ENDPOINT)")
        if not self.config.get("deployment_name"):
            raise ConfigurationException(
                "Azure OpenAI embedding deployment name is required. "
                "Set EMBEDDING_DEPLOYMENT_NAME environment variable."
            )

        api_version = self.config.get("api_version", "2024-08-01-preview")
        timeout = self.config.get("timeout", 200)
        max_retries = self.config.get("max_retries", 2)
        try:
            if self.config.get("use_managed_identity"):
                self.credential = AzureCredentials.get_async_credentials()
                token_provider = get_bearer_token_provider(
                    self.credential,
                    "https://cognitiveservices.azure.com/.default"
                )
                return AsyncAzureOpenAI(
                    api_version=api_version,
                    azure_endpoint=endpoint,
                    azure_ad_token_provider=token_provider,
                    max_retries=max_retries,
                    timeout=timeout
                )

            api_key = self.config.get("api_key")
            if not api_key:
                raise ConfigurationException("Azure OpenAI API key is required when managed identity is disabled")
            return AsyncAzureOpenAI(
                api_version=api_version,
                azure_endpoint=endpoint,
                api_key=api_key,
                max_retries=max_retries,
                timeout=timeout
            )
        except ConfigurationException:
            raise
        except Exception as e:
            raise ProviderException(f"Failed to initialize Azure OpenAI client: {e}")

    def _request_kwargs(self, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        request = {"model": self.config["deployment_name"]}
        if self.config.get("dimensions"):
            request["dimensions"] = self.config["dimensions"]
        request.update(kwargs)
        return request

    @handle_exceptions(retries=3, exceptions=(ProviderException,))
    @convert_exceptions({Exception: ProviderException})
    async def embedding(self, text: str, **kwargs) -> List[float]:
        """Generate embedding using Azure OpenAI."""
        response = await self.client.embeddings.create(input=text, **self._request_kwargs(kwargs))
        return response.data[0].embedding

    @handle_exceptions(retries=3, exceptions=(ProviderException,))
    @convert_exceptions({Exception: ProviderException})
    async def batch_embedding(self, texts: List[str], **kwargs) -> List[List[float]]:
        """Generate embeddings for multiple texts using Azure OpenAI."""
        try:
            response = await self.client.embeddings.create(input=texts, **self._request_kwargs(kwargs))
        except Exception as e:
            logger.error(f"Azure OpenAI batch embedding failed: {e}")
            raise ProviderException(f"Azure OpenAI batch embedding failed: {e}")
        return [item.embedding for item in sorted(response.data, key=lambda item: item.index)]

    async def close(self):
        if self.client:
            logger.info("Closing Azure OpenAI embedding client")
            await self.client.close()
        if self.credential:
            await self.credential.close()
