import os
import aiofiles
import aiofiles.os
import asyncio
from pathlib import Path
from loguru import logger
from typing import AsyncIterator, Dict, Any, List
from clipvault.pipeline.models import StoredObject
from clipvault.providers.base import StorageProvider
from clipvault.utils.error_handler import handle_exceptions, convert_exceptions
from clipvault.utils.error_handler import ProviderException


class LocalStorageProvider(StorageProvider):
    """Local filesystem-based storage provider."""

    PAGE_SIZE = 1000

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize Local Storage Provider.

        Args:
            config: {
                        "base_path": str -> Root directory for local storage (default: ./local_storage)
                        "public_base_url": str -> Optional URL prefix served for stored objects
                    }
        """
        self.config = config
        self.base_path = Path(config.get("base_path") or "./local_storage").resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = config.get("public_base_url")
        logger.info(f"LocalStorageProvider initialized at {self.base_path}")

    def _get_file_path(self, key: str) -> Path:
        """Return the full path for ``key``, refusing keys that escape the storage root."""
        file_path = (self.base_path / key).resolve()
        if self.base_path not in file_path.parents:
            raise ProviderException(f"Object key escapes storage root: {key}")
        return file_path

    async def get_object_url(self, key: str) -> str:
        """
        Generate a URL for a stored object.
        Uses the configured public base URL when present, otherwise a file:// URI.
        """
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"

        abs_path = self._get_file_path(key)
        # Proper file:// handling on Windows (e.g., file:///C:/path/to/file)
        if os.name == "nt":
            return f"file:///{abs_path.as_posix()}"
        return abs_path.as_uri()

    @handle_exceptions(retries=3, exceptions=(ProviderException,), backoff_factor=0.5)
    @convert_exceptions({Exception: ProviderException})
    async def upload_file(self, key: str, local_path: str) -> StoredObject:
        """Copy a local file into the storage directory."""
        dest_path = self._get_file_path(key)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(local_path, "rb") as src, aiofiles.open(dest_path, "wb") as dst:
            while chunk := await src.read(1024 * 1024):
                await dst.write(chunk)
        logger.debug(f"Stored {local_path} as {key}")
        return StoredObject(key=key, url=await self.get_object_url(key))

    @convert_exceptions({Exception: ProviderException})
    async def delete_object(self, key: str) -> None:
        try:
            await aiofiles.os.remove(self._get_file_path(key))
            logger.debug(f"Deleted object {key}")
        except FileNotFoundError:
            logger.debug(f"Object {key} already absent")

    async def list_keys(self, prefix: str) -> AsyncIterator[List[str]]:
        keys = await asyncio.to_thread(self._scan, prefix)
        for i in range(0, len(keys), self.PAGE_SIZE):
            yield keys[i:i + self.PAGE_SIZE]

    def _scan(self, prefix: str) -> List[str]:
        keys = []
        for path in self.base_path.rglob("*"):
            if path.is_file():
                key = path.relative_to(self.base_path).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    async def close(self):
        """No-op for local provider (for interface consistency)."""
        logger.debug("LocalStorageProvider closed (no-op).")
