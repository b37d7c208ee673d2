import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Sequence, Set, Tuple

import pytest

from clipvault.config.settings import ClipVaultConfig, VideoConfig
from clipvault.db.repository import ClipRepository
from clipvault.pipeline.embeddings import EmbeddingClient
from clipvault.pipeline.ingestion import ClipIngestionPipeline
from clipvault.pipeline.models import PersistedClip, ProcessedClipArtifact, StoredObject
from clipvault.pipeline.persistence import ReplaceCoordinator
from clipvault.pipeline.processor import ClipProcessor
from clipvault.pipeline.rollback import RollbackCoordinator
from clipvault.pipeline.sources import SourceAcquirer
from clipvault.providers.base import EmbeddingProvider, StorageProvider
from clipvault.utils.error_handler import ProviderException

DIMENSIONS = 8


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep a developer's .env or shell settings out of the tests.
    monkeypatch.chdir(tmp_path)
    for name in (
        "EMBEDDING_DIMENSIONS",
        "EMBEDDING_MAX_BATCH",
        "MAX_EMBEDDINGS_PER_BATCH",
        "VIDEO_DEFAULT_FPS",
        "DEFAULT_FPS",
        "STORAGE_PROVIDER",
        "EMBEDDING_PROVIDER",
        "FFMPEG_TRANSCODE",
        "FFMPEG_GPU_ACCELERATION",
        "PIPELINE_MAX_CONCURRENT_CLIPS",
    ):
        monkeypatch.delenv(name, raising=False)


class BytesStream:
    """Minimal async readable over an in-memory buffer."""

    def __init__(self, data: bytes):
        self.data = data
        self.position = 0

    async def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = len(self.data) - self.position
        chunk = self.data[self.position:self.position + size]
        self.position += len(chunk)
        return chunk


class FakeStorage(StorageProvider):
    def __init__(self, page_size: int = 1000):
        self.objects: Dict[str, bytes] = {}
        self.uploads: List[str] = []
        self.deletes: List[str] = []
        self.fail_upload: Set[str] = set()
        self.fail_upload_prefix: Optional[str] = None
        self.fail_delete: Set[str] = set()
        self.fail_listing = False
        self.page_size = page_size
        self.closed = False

    async def get_object_url(self, key: str) -> str:
        return f"https://cdn.test/{key}"

    async def upload_file(self, key: str, local_path: str) -> StoredObject:
        await asyncio.sleep(0)
        if key in self.fail_upload or (self.fail_upload_prefix and key.startswith(self.fail_upload_prefix)):
            raise ProviderException(f"upload rejected for {key}")
        self.objects[key] = Path(local_path).read_bytes()
        self.uploads.append(key)
        return StoredObject(key=key, url=await self.get_object_url(key))

    async def delete_object(self, key: str) -> None:
        self.deletes.append(key)
        if key in self.fail_delete:
            raise ProviderException(f"delete rejected for {key}")
        self.objects.pop(key, None)

    async def list_keys(self, prefix: str) -> AsyncIterator[List[str]]:
        if self.fail_listing:
            raise ProviderException("listing unavailable")
        keys = sorted(key for key in self.objects if key.startswith(prefix))
        for i in range(0, len(keys), self.page_size):
            yield keys[i:i + self.page_size]

    async def close(self):
        self.closed = True


class FakeEmbeddingProvider(EmbeddingProvider):
    def __init__(self, dimensions: int = DIMENSIONS):
        self.dimensions = dimensions
        self.calls: List[List[str]] = []
        self.error: Optional[Exception] = None
        self.short_by = 0
        self.closed = False

    def vector_for(self, text: str) -> List[float]:
        return [float(len(text))] + [0.5] * (self.dimensions - 1)

    async def embedding(self, text: str, **kwargs) -> List[float]:
        return self.vector_for(text)

    async def batch_embedding(self, texts: List[str], **kwargs) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.error is not None:
            raise self.error
        vectors = [self.vector_for(text) for text in texts]
        return vectors[:len(vectors) - self.short_by]

    async def close(self):
        self.closed = True


class FakeTrimmer:
    """Writes a small marker file instead of running ffmpeg."""

    def __init__(self):
        self.calls: List[Tuple[float, float]] = []
        self.fail_starts: Set[float] = set()
        self.error: Exception = RuntimeError("ffmpeg exited with code 1")
        self.hold_starts: Set[float] = set()
        self.released: Optional[asyncio.Event] = None

    async def trim(self, input_path: Path, output_path: Path, start_s: float, end_s: float) -> Path:
        self.calls.append((start_s, end_s))
        await asyncio.sleep(0)
        if start_s in self.hold_starts:
            if self.released is None:
                self.released = asyncio.Event()
            await self.released.wait()
        if start_s in self.fail_starts:
            raise self.error
        Path(output_path).write_bytes(f"{start_s:.3f}-{end_s:.3f}".encode())
        return output_path


class InMemoryClipRepository(ClipRepository):
    def __init__(self):
        self.rows: List[PersistedClip] = []
        self.next_id = 1
        self.fail_insert: Optional[Exception] = None
        self.schema_ready = False
        self.closed = False

    async def ensure_schema(self) -> None:
        self.schema_ready = True

    async def count_by_origin(self, origin_id: str) -> int:
        return sum(1 for row in self.rows if row.origin_id == origin_id)

    async def replace_origin(
        self, origin_id: str, artifacts: Sequence[ProcessedClipArtifact]
    ) -> Tuple[int, List[PersistedClip]]:
        if self.fail_insert is not None:
            raise self.fail_insert
        now = datetime.now(timezone.utc)
        inserted = []
        for artifact in artifacts:
            inserted.append(
                PersistedClip(
                    id=self.next_id,
                    origin_id=artifact.origin_id,
                    start_frame=artifact.start_frame,
                    end_frame=artifact.end_frame,
                    description=artifact.description,
                    video_url=artifact.video_url,
                    animation_url=artifact.animation_url,
                    embedding=list(artifact.embedding),
                    created_at=now,
                    updated_at=now,
                )
            )
            self.next_id += 1
        before = len(self.rows)
        self.rows = [row for row in self.rows if row.origin_id != origin_id]
        removed = before - len(self.rows)
        self.rows.extend(inserted)
        return removed, inserted

    async def list_page(self, limit: int, offset: int) -> Tuple[List[PersistedClip], int]:
        ordered = sorted(self.rows, key=lambda row: row.id, reverse=True)
        return ordered[offset:offset + limit], len(self.rows)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def trimmer() -> FakeTrimmer:
    return FakeTrimmer()


@pytest.fixture
def repository() -> InMemoryClipRepository:
    return InMemoryClipRepository()


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    root = tmp_path / "workspaces"
    root.mkdir()
    return root


@pytest.fixture
def video_config() -> VideoConfig:
    return VideoConfig(default_fps=30, max_upload_size_mb=1, max_download_size_mb=1, download_timeout_ms=5000)


@pytest.fixture
def pipeline(storage, embedding_provider, trimmer, repository, workspace_root, video_config) -> ClipIngestionPipeline:
    return ClipIngestionPipeline(
        acquirer=SourceAcquirer(video_config),
        embedder=EmbeddingClient(embedding_provider, dimensions=DIMENSIONS, max_batch=10),
        processor=ClipProcessor(storage, trimmer),
        replacer=ReplaceCoordinator(repository, storage, DIMENSIONS),
        rollback=RollbackCoordinator(storage),
        repository=repository,
        default_fps=30,
        workspace_dir=str(workspace_root),
    )


@pytest.fixture
def config() -> ClipVaultConfig:
    return ClipVaultConfig()
