"""
Centralized Azure credentials management for all providers.

Azure OpenAI embeddings and Azure Blob Storage obtain their managed-identity
credentials here so both use the same chain.
"""

from azure.identity.aio import (
    DefaultAzureCredential as AsyncDefaultAzureCredential,
    AzureCliCredential as AsyncAzureCliCredential,
    ChainedTokenCredential as AsyncChainedTokenCredential
)


class AzureCredentials:
    """Centralized credential management for all Azure services."""

    @staticmethod
    def get_async_credentials():
        """
        Get credentials for Azure services (async version).
        Uses ChainedTokenCredential to try CLI first, then fallback to DefaultAzureCredential.

        Returns:
            AsyncChainedTokenCredential with CLI and DefaultAzureCredential
        """
        return AsyncChainedTokenCredential(
            AsyncAzureCliCredential(),
            AsyncDefaultAzureCredential()
        )
