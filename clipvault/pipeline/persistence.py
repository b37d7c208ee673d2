import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Sequence

from loguru import logger

from clipvault.db.repository import ClipRepository
from clipvault.exceptions import PersistenceException
from clipvault.pipeline.models import PersistedClip, ProcessedClipArtifact, origin_prefixes
from clipvault.providers.base import StorageProvider


class ReplaceCoordinator:
    """
    Swaps the stored clip set of an origin for a freshly processed one.

    Cleanup of the previous objects happens only once every new artifact
    exists. The old rows are then deleted and the new rows inserted in a
    single transaction, so a failed insert leaves the previous rows in place
    (their objects are already gone and are not restored).

    Callers hold ``origin_guard(origin_id)`` from their first upload until
    ``replace_and_insert`` returns, so two requests for one origin never
    purge each other's objects.
    """

    def __init__(self, repository: ClipRepository, storage: StorageProvider, dimensions: int):
        self.repository = repository
        self.storage = storage
        self.dimensions = dimensions
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def origin_guard(self, origin_id: str) -> AsyncIterator[None]:
        """Serialize work on one origin within this process."""
        lock = self._locks.setdefault(origin_id, asyncio.Lock())
        self._holders[origin_id] = self._holders.get(origin_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[origin_id] -= 1
            if not self._holders[origin_id]:
                del self._holders[origin_id]
                del self._locks[origin_id]

    def active_origins(self) -> List[str]:
        return list(self._locks)

    async def purge_objects(self, origin_id: str, keep: Sequence[str] = ()) -> List[str]:
        """Remove an origin's previous objects, except ``keep``; return the deleted keys."""
        try:
            if await self.repository.count_by_origin(origin_id) == 0:
                return []
            deleted_keys = []
            for prefix in origin_prefixes(origin_id):
                deleted_keys.extend(await self.storage.delete_prefix(prefix, keep=keep))
        except Exception as e:
            raise PersistenceException(
                f"Failed to clean up existing clips for origin {origin_id}: {e}",
                phase="cleanup",
                details={"origin_id": origin_id},
            ) from e
        return deleted_keys

    async def replace_and_insert(
        self, origin_id: str, artifacts: Sequence[ProcessedClipArtifact]
    ) -> List[PersistedClip]:
        for index, artifact in enumerate(artifacts):
            if len(artifact.embedding) != self.dimensions:
                raise PersistenceException(
                    f"Embedding for clip {index} has {len(artifact.embedding)} dimensions, "
                    f"expected {self.dimensions}",
                    phase="insert",
                    details={"clip_index": index},
                )

        keep = [key for artifact in artifacts for key in artifact.object_keys()]
        deleted_keys = await self.purge_objects(origin_id, keep=keep)

        try:
            removed, persisted = await self.repository.replace_origin(origin_id, artifacts)
        except Exception as e:
            raise PersistenceException(
                f"Failed to insert {len(artifacts)} clips for origin {origin_id}: {e}",
                phase="insert",
                details={"origin_id": origin_id},
            ) from e

        if removed or deleted_keys:
            logger.info(f"Replaced origin {origin_id}: removed {removed} rows and {len(deleted_keys)} objects")
        logger.info(f"Inserted {len(persisted)} clips for origin {origin_id}")
        return persisted
