import asyncio
from typing import Iterable, List, Optional

from loguru import logger

from clipvault.pipeline.models import DeletionResult
from clipvault.providers.base import StorageProvider


class RollbackCoordinator:
    """Best-effort removal of objects a failed request wrote. Never raises."""

    def __init__(self, storage: StorageProvider):
        self.storage = storage

    async def _delete(self, key: str) -> DeletionResult:
        try:
            await self.storage.delete_object(key)
        except Exception as e:
            logger.warning(f"Failed to delete {key} during rollback: {e}")
            return DeletionResult(key=key, succeeded=False, error=str(e))
        return DeletionResult(key=key, succeeded=True)

    async def discard(self, keys: Optional[Iterable[Optional[str]]]) -> List[DeletionResult]:
        targets = list(dict.fromkeys(key for key in (keys or ()) if key))
        if not targets:
            return []

        results = await asyncio.gather(*(self._delete(key) for key in targets))
        failed = sum(1 for result in results if not result.succeeded)
        logger.info(f"Rollback removed {len(results) - failed} of {len(results)} objects ({failed} failed)")
        return list(results)
