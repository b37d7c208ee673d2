import aiofiles
from urllib.parse import unquote
from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob.aio import BlobServiceClient
from loguru import logger
from typing import AsyncIterator, Dict, Any, List
from clipvault.pipeline.models import StoredObject
from clipvault.providers.base import StorageProvider
from clipvault.providers.credentials import AzureCredentials
from clipvault.utils.error_handler import handle_exceptions, convert_exceptions, ErrorHandler
from clipvault.utils.error_handler import ProviderException, ConfigurationException


class AzureStorageProvider(StorageProvider):
    """Azure Blob Storage provider implementation. Object keys map to blob names in one container."""

    PAGE_SIZE = 1000

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize Azure Storage Provider.

        Args:
            config: Configuration dictionary with:
                - container_name: Blob container that holds every object
                - connection_string: Storage connection string (takes precedence)
                - account_url: Azure Storage account URL (used with managed identity)
                - use_managed_identity: Whether to use managed identity (default: True)
                - upload_timeout_ms: Per-upload server timeout
        """
        self.config = config
        self.container_name = config.get("container_name") or "clips"
        self.timeout_seconds = max(1, int(config.get("upload_timeout_ms", 120000)) // 1000)
        self.credential = None
        self.service_client = None

    def _initialize(self):
        """Initialize credential and service client."""
        if self.service_client is not None:
            return
        try:
            connection_string = self.config.get("connection_string")
            if connection_string:
                self.service_client = BlobServiceClient.from_connection_string(connection_string)
            else:
                if not self.config.get("use_managed_identity", True):
                    raise ConfigurationException(
                        "Azure Storage requires a connection_string when managed identity is disabled"
                    )
                account_url = self.config.get("account_url")
                if not account_url:
                    raise ConfigurationException("Azure Storage account_url is required")
                self.credential = AzureCredentials.get_async_credentials()
                self.service_client = BlobServiceClient(account_url=account_url, credential=self.credential)
            logger.info("Successfully initialized Azure Blob Storage client")
        except ConfigurationException:
            raise
        except Exception as e:
            logger.exception(f"Failed to initialize Azure Blob Storage client: {e}")
            raise ProviderException(f"Failed to initialize Azure Blob Storage client: {e}")

    def _container(self):
        self._initialize()
        return self.service_client.get_container_client(self.container_name)

    async def get_object_url(self, key: str) -> str:
        """Return the unencoded URL the blob has (or would have) under ``key``."""
        blob = self._container().get_blob_client(key)
        return unquote(blob.url)

    @handle_exceptions(retries=3, exceptions=(ProviderException,))
    @convert_exceptions({Exception: ProviderException})
    async def upload_file(self, key: str, local_path: str) -> StoredObject:
        """Upload a local file to blob storage."""
        blob = self._container().get_blob_client(key)
        try:
            logger.debug(f"Uploading {local_path} to {self.container_name}/{key}")
            async with aiofiles.open(local_path, "rb") as f:
                data = await f.read()
            await blob.upload_blob(data, overwrite=True, timeout=self.timeout_seconds)
            return StoredObject(key=key, url=unquote(blob.url))
        except Exception as e:
            raise ErrorHandler.handle_provider_error(e, "azure_blob") from e
        finally:
            await blob.close()

    @convert_exceptions({Exception: ProviderException})
    async def delete_object(self, key: str) -> None:
        blob = self._container().get_blob_client(key)
        try:
            await blob.delete_blob(delete_snapshots="include")
            logger.debug(f"Deleted blob {key}")
        except ResourceNotFoundError:
            logger.debug(f"Blob {key} already absent")
        finally:
            await blob.close()

    async def list_keys(self, prefix: str) -> AsyncIterator[List[str]]:
        container = self._container()
        try:
            pages = container.list_blobs(name_starts_with=prefix, results_per_page=self.PAGE_SIZE).by_page()
            async for page in pages:
                yield [item.name async for item in page]
        except Exception as e:
            raise ErrorHandler.handle_provider_error(e, "azure_blob") from e
        finally:
            await container.close()

    async def close(self):
        """Close the underlying service client and cleanup."""
        if self.service_client:
            logger.info("Closing Azure Blob Storage client")
            await self.service_client.close()
        if self.credential:
            await self.credential.close()
