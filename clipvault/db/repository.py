from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

from loguru import logger
from sqlalchemy import delete, func, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from clipvault.config.settings import DatabaseConfig
from clipvault.db.models import DEFAULT_EMBEDDING_DIMENSIONS, build_clip_model
from clipvault.pipeline.models import PersistedClip, ProcessedClipArtifact
from clipvault.utils.error_handler import log_exceptions

ORIGIN_LOCK = text("SELECT pg_advisory_xact_lock(hashtext(:origin_id))")


class ClipRepository(ABC):
    """Abstract base class for the relational clip store."""

    @abstractmethod
    async def ensure_schema(self) -> None:
        pass

    @abstractmethod
    async def count_by_origin(self, origin_id: str) -> int:
        pass

    @abstractmethod
    async def replace_origin(
        self, origin_id: str, artifacts: Sequence[ProcessedClipArtifact]
    ) -> Tuple[int, List[PersistedClip]]:
        """
        Delete every row for ``origin_id`` and insert ``artifacts`` in one transaction.

        Concurrent replacements of the same origin are serialized by the store.
        On any error no row changes. Returns the number of rows removed and the
        new rows in input order.
        """
        pass

    @abstractmethod
    async def list_page(self, limit: int, offset: int) -> Tuple[List[PersistedClip], int]:
        """Return one page of clips (newest first) and the total row count."""
        pass

    async def close(self) -> None:
        pass


class SqlAlchemyClipRepository(ClipRepository):
    """PostgreSQL + pgvector store using the SQLAlchemy async ORM."""

    def __init__(self, engine: AsyncEngine, dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS):
        self.engine = engine
        self.dimensions = dimensions
        self.Clip = build_clip_model(dimensions)
        self.session_factory = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_config(cls, config: DatabaseConfig, dimensions: int) -> "SqlAlchemyClipRepository":
        connect_args = {"ssl": True} if config.ssl else {}
        engine = create_async_engine(
            config.sqlalchemy_url(),
            pool_size=config.pool_size,
            pool_pre_ping=True,
            echo=config.echo,
            connect_args=connect_args,
        )
        return cls(engine, dimensions=dimensions)

    def _to_persisted(self, row) -> PersistedClip:
        return PersistedClip(
            id=row.id,
            origin_id=row.origin_id,
            start_frame=row.start_frame,
            end_frame=row.end_frame,
            description=row.description,
            video_url=row.video_url,
            animation_url=row.animation_url,
            embedding=[float(value) for value in row.embedding],
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def ensure_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(self.Clip.metadata.create_all)
        logger.info(f"Ensured clip table (embedding dimensions={self.dimensions})")

    async def count_by_origin(self, origin_id: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(self.Clip).where(self.Clip.origin_id == origin_id)
            )
            return int(result.scalar_one())

    @log_exceptions(custom_message="Replacing clip rows failed")
    async def replace_origin(
        self, origin_id: str, artifacts: Sequence[ProcessedClipArtifact]
    ) -> Tuple[int, List[PersistedClip]]:
        async with self.session_factory() as session:
            async with session.begin():
                # Held until commit; other writers of this origin wait here.
                await session.execute(ORIGIN_LOCK, {"origin_id": origin_id})
                result = await session.execute(delete(self.Clip).where(self.Clip.origin_id == origin_id))
                rows = [
                    self.Clip(
                        origin_id=artifact.origin_id,
                        start_frame=artifact.start_frame,
                        end_frame=artifact.end_frame,
                        description=artifact.description,
                        video_url=artifact.video_url,
                        animation_url=artifact.animation_url,
                        embedding=list(artifact.embedding),
                    )
                    for artifact in artifacts
                ]
                session.add_all(rows)
                await session.flush()
        return result.rowcount or 0, [self._to_persisted(row) for row in rows]

    async def list_page(self, limit: int, offset: int) -> Tuple[List[PersistedClip], int]:
        async with self.session_factory() as session:
            total = (await session.execute(select(func.count()).select_from(self.Clip))).scalar_one()
            result = await session.execute(
                select(self.Clip).order_by(self.Clip.id.desc()).limit(limit).offset(offset)
            )
            clips = [self._to_persisted(row) for row in result.scalars().all()]
        return clips, int(total)

    async def close(self) -> None:
        logger.info("Disposing database engine")
        await self.engine.dispose()
