import asyncio
from typing import List, Optional

from loguru import logger

from clipvault.db.repository import ClipRepository
from clipvault.exceptions import ProcessingException, ValidationException
from clipvault.pipeline.embeddings import EmbeddingClient
from clipvault.pipeline.models import ClipPage, IngestionRequest, PersistedClip
from clipvault.pipeline.persistence import ReplaceCoordinator
from clipvault.pipeline.processor import ClipProcessor, UploadLedger
from clipvault.pipeline.rollback import RollbackCoordinator
from clipvault.pipeline.sources import SourceAcquirer
from clipvault.pipeline.workspace import Workspace
from clipvault.utils.error_handler import ErrorHandler

MAX_PAGE_SIZE = 100


class ClipIngestionPipeline:
    """
    Runs one ingestion request end to end.

    1. Open a private workspace.
    2. Acquire sources and embed descriptions concurrently.
    3. Trim, slice and upload every clip concurrently.
    4. Replace the origin's previous clips with the new ones.

    Steps 3 and 4 hold the origin's lock, so requests for one origin commit
    one after another.

    Any failure after the first upload discards every object this request
    wrote. The workspace is removed on every exit path.

    Example Usage:
    ---------------
    >>> pipeline = ClipIngestionPipeline(acquirer, embedder, processor, replacer, rollback, repository)
    >>> clips = await pipeline.ingest(IngestionRequest(payload=payload, video=RemoteSource(url)))
    """

    def __init__(
        self,
        acquirer: SourceAcquirer,
        embedder: EmbeddingClient,
        processor: ClipProcessor,
        replacer: ReplaceCoordinator,
        rollback: RollbackCoordinator,
        repository: ClipRepository,
        default_fps: int = 30,
        tmp_dir_prefix: str = "bucket-",
        workspace_dir: Optional[str] = None,
    ):
        self.acquirer = acquirer
        self.embedder = embedder
        self.processor = processor
        self.replacer = replacer
        self.rollback = rollback
        self.repository = repository
        self.default_fps = default_fps
        self.tmp_dir_prefix = tmp_dir_prefix
        self.workspace_dir = workspace_dir

    def new_workspace(self) -> Workspace:
        return Workspace(prefix=self.tmp_dir_prefix, base_dir=self.workspace_dir)

    async def ingest(self, request: IngestionRequest) -> List[PersistedClip]:
        payload = request.payload
        fps = payload.resolved_fps(self.default_fps)
        log = logger.bind(origin_id=payload.origin_id)
        log.info(f"Ingesting {len(payload.clips)} clips for origin {payload.origin_id} at {fps} fps")

        ledger = UploadLedger()
        async with self.new_workspace() as workspace:
            staged, embeddings = await asyncio.gather(
                self.acquirer.acquire(workspace, request.video, request.animation),
                self.embedder.embed(payload.descriptions),
                return_exceptions=True,
            )
            # Acquisition errors win over embedding errors.
            for outcome in (staged, embeddings):
                if isinstance(outcome, BaseException):
                    raise outcome

            async with self.replacer.origin_guard(payload.origin_id):
                try:
                    artifacts = await self.processor.process(workspace, staged, payload, fps, embeddings, ledger)
                    persisted = await self.replacer.replace_and_insert(payload.origin_id, artifacts)
                except BaseException as e:
                    # Cancellation also discards what this request uploaded.
                    if len(ledger):
                        log.warning(f"Ingestion failed ({e!r}); rolling back {len(ledger)} uploaded objects")
                        await self.rollback.discard(ledger.keys)
                    if not isinstance(e, Exception):
                        raise
                    raise ErrorHandler.wrap(e, ProcessingException, "Clip processing failed") from e

        log.info(f"Ingested {len(persisted)} clips for origin {payload.origin_id}")
        return persisted

    async def list_clips(self, limit: int = 10, offset: int = 0) -> ClipPage:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationException(f"limit must be between 1 and {MAX_PAGE_SIZE}", details={"limit": limit})
        if offset < 0:
            raise ValidationException("offset must be non-negative", details={"offset": offset})
        clips, total = await self.repository.list_page(limit, offset)
        return ClipPage(clips=clips, total=total, limit=limit, offset=offset)
