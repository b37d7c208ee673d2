from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from clipvault.utils.validation import UploadPayload


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes:
        ...


@dataclass(frozen=True)
class UploadedSource:
    """Media that arrived in the request body."""

    stream: AsyncReadable
    filename: Optional[str] = None


@dataclass(frozen=True)
class RemoteSource:
    """Media to be fetched from a URL."""

    url: str


MediaSource = Union[UploadedSource, RemoteSource]


@dataclass(frozen=True)
class IngestionRequest:
    payload: UploadPayload
    video: MediaSource
    animation: Optional[MediaSource] = None


@dataclass(frozen=True)
class StagedSources:
    """Source material staged inside the request workspace."""

    video_path: Path
    animation: Optional[bytes] = None


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str


@dataclass
class ProcessedClipArtifact:
    origin_id: str
    start_frame: int
    end_frame: int
    description: str
    video_url: str
    video_object_key: str
    embedding: List[float]
    animation_url: Optional[str] = None
    animation_object_key: Optional[str] = None

    def object_keys(self) -> List[str]:
        return [key for key in (self.video_object_key, self.animation_object_key) if key]


@dataclass
class PersistedClip:
    id: int
    origin_id: str
    start_frame: int
    end_frame: int
    description: str
    video_url: str
    embedding: List[float]
    created_at: datetime
    updated_at: datetime
    animation_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "origin_id": self.origin_id,
            "start_frame": self.start_frame,
            "end_frame": self.end_frame,
            "description": self.description,
            "video_url": self.video_url,
            "animation_url": self.animation_url,
            "embedding": list(self.embedding),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class ClipPage:
    clips: List[PersistedClip] = field(default_factory=list)
    total: int = 0
    limit: int = 10
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.clips) < self.total


@dataclass(frozen=True)
class DeletionResult:
    key: str
    succeeded: bool
    error: Optional[str] = None


def video_object_key(origin_id: str, artifact_id: str) -> str:
    return f"clips/{origin_id}/{artifact_id}.mp4"


def animation_object_key(origin_id: str, artifact_id: str) -> str:
    return f"animations/{origin_id}/{artifact_id}.bin"


def origin_prefixes(origin_id: str) -> List[str]:
    return [f"clips/{origin_id}/", f"animations/{origin_id}/"]
