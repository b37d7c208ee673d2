import asyncio
import uuid
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import aiofiles
from loguru import logger

from clipvault.exceptions import ClipVaultException, EmbeddingException, ProcessingException, ProviderException
from clipvault.pipeline.animation import slice_animation
from clipvault.pipeline.models import (
    ProcessedClipArtifact,
    StagedSources,
    StoredObject,
    animation_object_key,
    video_object_key,
)
from clipvault.pipeline.trimmer import ClipTrimmer
from clipvault.pipeline.workspace import Workspace
from clipvault.providers.base import StorageProvider
from clipvault.utils.error_handler import ErrorHandler
from clipvault.utils.validation import ClipSpec, UploadPayload


class UploadLedger:
    """Object keys written (or being written) on behalf of one request."""

    def __init__(self):
        self._keys: List[str] = []

    def record(self, key: str) -> None:
        if key not in self._keys:
            self._keys.append(key)

    @property
    def keys(self) -> List[str]:
        return list(self._keys)

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._keys))

    def __len__(self) -> int:
        return len(self._keys)


class ClipProcessor:
    """
    Produces one stored artifact per requested clip.

    Clips are processed concurrently and every task runs to completion even
    when a sibling fails, so the ledger ends up holding every key any task
    wrote. Results come back in request order.
    """

    def __init__(self, storage: StorageProvider, trimmer: ClipTrimmer, max_concurrency: int = 0):
        self.storage = storage
        self.trimmer = trimmer
        self.max_concurrency = max_concurrency

    async def process(
        self,
        workspace: Workspace,
        staged: StagedSources,
        payload: UploadPayload,
        fps: int,
        embeddings: Sequence[List[float]],
        ledger: UploadLedger,
    ) -> List[ProcessedClipArtifact]:
        clips = payload.clips
        if len(embeddings) != len(clips):
            raise EmbeddingException(
                f"Embedding count {len(embeddings)} does not match clip count {len(clips)}",
                details={"expected": len(clips), "actual": len(embeddings)},
            )

        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency > 0 else None
        tasks = [
            self._run_one(semaphore, workspace, staged, payload.origin_id, index, clip, fps, embeddings[index], ledger)
            for index, clip in enumerate(clips)
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        failures = [(index, result) for index, result in enumerate(results) if isinstance(result, BaseException)]
        if failures:
            index, error = failures[0]
            logger.error(
                f"{len(failures)} of {len(clips)} clips failed for origin {payload.origin_id}; "
                f"first failure at clip {index}: {error}"
            )
            if isinstance(error, ClipVaultException) or not isinstance(error, Exception):
                raise error
            raise ErrorHandler.wrap(error, ProcessingException, f"Clip {index} failed", clip_index=index) from error

        logger.info(f"Processed {len(results)} clips for origin {payload.origin_id}")
        return list(results)

    async def _run_one(self, semaphore: Optional[asyncio.Semaphore], *args) -> ProcessedClipArtifact:
        async with AsyncExitStack() as stack:
            if semaphore is not None:
                await stack.enter_async_context(semaphore)
            return await self.process_clip(*args)

    async def process_clip(
        self,
        workspace: Workspace,
        staged: StagedSources,
        origin_id: str,
        index: int,
        clip: ClipSpec,
        fps: int,
        embedding: List[float],
        ledger: UploadLedger,
    ) -> ProcessedClipArtifact:
        artifact_id = uuid.uuid4().hex

        clip_path = workspace.path_for(f"{artifact_id}.mp4")
        try:
            await self.trimmer.trim(staged.video_path, clip_path, clip.start_seconds(fps), clip.end_seconds(fps))
            video = await self._upload(video_object_key(origin_id, artifact_id), clip_path, ledger, index)
        finally:
            await workspace.remove_file(clip_path)

        animation: Optional[StoredObject] = None
        if staged.animation is not None:
            sliced = slice_animation(staged.animation, clip.start_frame, clip.last_frame)
            animation_path = workspace.path_for(f"{artifact_id}.bin")
            try:
                async with aiofiles.open(animation_path, "wb") as f:
                    await f.write(sliced)
                animation = await self._upload(
                    animation_object_key(origin_id, artifact_id), animation_path, ledger, index
                )
            finally:
                await workspace.remove_file(animation_path)

        logger.debug(f"Clip {index} [{clip.start_frame}, {clip.end_frame}) stored as {artifact_id}")
        return ProcessedClipArtifact(
            origin_id=origin_id,
            start_frame=clip.start_frame,
            end_frame=clip.end_frame,
            description=clip.description,
            video_url=video.url,
            video_object_key=video.key,
            embedding=list(embedding),
            animation_url=animation.url if animation else None,
            animation_object_key=animation.key if animation else None,
        )

    async def _upload(self, key: str, path: Path, ledger: UploadLedger, index: int) -> StoredObject:
        # Recorded before the call: a timed-out upload may still have landed.
        ledger.record(key)
        try:
            return await self.storage.upload_file(key, str(path))
        except ProviderException as e:
            raise ProcessingException(
                f"Upload of {key} failed: {e.message}",
                details={"clip_index": index, "key": key, **e.details},
            ) from e
