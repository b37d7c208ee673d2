from typing import Optional

from loguru import logger

from clipvault.config.settings import ClipVaultConfig
from clipvault.db.repository import ClipRepository, SqlAlchemyClipRepository
from clipvault.pipeline.embeddings import EmbeddingClient
from clipvault.pipeline.ingestion import ClipIngestionPipeline
from clipvault.pipeline.persistence import ReplaceCoordinator
from clipvault.pipeline.processor import ClipProcessor
from clipvault.pipeline.rollback import RollbackCoordinator
from clipvault.pipeline.sources import SourceAcquirer
from clipvault.pipeline.trimmer import ClipTrimmer
from clipvault.providers.base import EmbeddingProvider, StorageProvider
from clipvault.providers.factory import provider_factory


class ServiceContainer:
    """Owns the long-lived clients and the pipeline wired on top of them."""

    def __init__(
        self,
        config: ClipVaultConfig,
        storage: StorageProvider,
        embedding_provider: EmbeddingProvider,
        repository: ClipRepository,
        trimmer: Optional[ClipTrimmer] = None,
        workspace_dir: Optional[str] = None,
    ):
        self.config = config
        self.storage = storage
        self.embedding_provider = embedding_provider
        self.repository = repository
        self.trimmer = trimmer or ClipTrimmer(config.ffmpeg)

        dimensions = config.embedding.dimensions
        self.pipeline = ClipIngestionPipeline(
            acquirer=SourceAcquirer(config.video),
            embedder=EmbeddingClient(embedding_provider, dimensions=dimensions, max_batch=config.embedding.max_batch),
            processor=ClipProcessor(storage, self.trimmer, max_concurrency=config.pipeline.max_concurrent_clips),
            replacer=ReplaceCoordinator(repository, storage, dimensions),
            rollback=RollbackCoordinator(storage),
            repository=repository,
            default_fps=config.video.default_fps,
            tmp_dir_prefix=config.tmp_dir_prefix,
            workspace_dir=workspace_dir,
        )

    @classmethod
    def from_config(cls, config: Optional[ClipVaultConfig] = None) -> "ServiceContainer":
        config = config or ClipVaultConfig()
        storage = provider_factory.create_storage_provider(config=config)
        embedding_provider = provider_factory.create_embedding_provider(config=config)
        repository = SqlAlchemyClipRepository.from_config(config.database, config.embedding.dimensions)
        return cls(config, storage, embedding_provider, repository)

    async def startup(self) -> None:
        if self.config.database.auto_create:
            await self.repository.ensure_schema()
        logger.info(f"{self.config.app_name} services ready")

    async def close(self) -> None:
        for name, resource in (
            ("storage", self.storage),
            ("embedding", self.embedding_provider),
            ("repository", self.repository),
        ):
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Error closing {name} client: {e}")
