from abc import ABC, abstractmethod
from typing import AsyncIterator, Iterable, List

from clipvault.pipeline.models import StoredObject


class StorageProvider(ABC):
    """Abstract base class for object storage providers."""

    @abstractmethod
    async def get_object_url(self, key: str) -> str:
        """Return the public URL an object has (or would have) under ``key``."""
        pass

    @abstractmethod
    async def upload_file(self, key: str, local_path: str) -> StoredObject:
        """Upload a local file under ``key``, overwriting any existing object."""
        pass

    @abstractmethod
    async def delete_object(self, key: str) -> None:
        """Delete ``key``. Deleting a missing object is not an error."""
        pass

    @abstractmethod
    def list_keys(self, prefix: str) -> AsyncIterator[List[str]]:
        """Yield pages of object keys that start with ``prefix``."""
        pass

    async def delete_prefix(self, prefix: str, keep: Iterable[str] = ()) -> List[str]:
        """Delete every object under ``prefix`` except those in ``keep``; return the deleted keys."""
        keep = set(keep)
        deleted = []
        # Collect first so deletes do not disturb paging.
        pages = [page async for page in self.list_keys(prefix)]
        for page in pages:
            for key in page:
                if key in keep:
                    continue
                await self.delete_object(key)
                deleted.append(key)
        return deleted

    @abstractmethod
    async def close(self):
        """Close the underlying client and cleanup."""
        pass
