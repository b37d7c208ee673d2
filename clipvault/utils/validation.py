from typing import Any, List, Optional
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..exceptions import ValidationException

MAX_CLIPS_PER_REQUEST = 100
MAX_DESCRIPTION_LENGTH = 1024


def _validate_http_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return value


class ClipSpec(BaseModel):
    """A half-open frame range ``[start_frame, end_frame)`` plus its description."""

    model_config = ConfigDict(extra="forbid")

    start_frame: int = Field(..., ge=0)
    end_frame: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("description cannot be blank")
        return stripped

    @model_validator(mode="after")
    def validate_frame_range(self) -> "ClipSpec":
        if self.end_frame <= self.start_frame:
            raise ValueError("end_frame must be greater than start_frame")
        return self

    def start_seconds(self, fps: int) -> float:
        return self.start_frame / fps

    def end_seconds(self, fps: int) -> float:
        return self.end_frame / fps

    @property
    def last_frame(self) -> int:
        """Inclusive upper frame, never below ``start_frame``."""
        return max(self.start_frame, self.end_frame - 1)


class UploadPayload(BaseModel):
    """Request model for clip ingestion."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    origin_id: str = Field(..., min_length=1, max_length=256)
    origin_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("origin_url", "video_url"),
    )
    anim_url: Optional[str] = Field(default=None)
    fps: Optional[int] = Field(default=None, ge=1, le=240)
    clips: List[ClipSpec] = Field(..., min_length=1, max_length=MAX_CLIPS_PER_REQUEST)

    @field_validator("origin_id")
    @classmethod
    def validate_origin_id(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("origin_id cannot be blank")
        # origin_id becomes a path segment of every object key
        if "/" in stripped or "\\" in stripped or stripped in (".", ".."):
            raise ValueError("origin_id cannot contain path separators")
        return stripped

    @field_validator("origin_url", "anim_url")
    @classmethod
    def validate_urls(cls, v: Optional[str]) -> Optional[str]:
        return _validate_http_url(v)

    def resolved_fps(self, default_fps: int) -> int:
        return self.fps if self.fps is not None else default_fps

    @property
    def descriptions(self) -> List[str]:
        return [clip.description for clip in self.clips]


def parse_upload_payload(data: Any, max_clips: Optional[int] = None) -> UploadPayload:
    """Validate raw request data into an ``UploadPayload``.

    Raises:
        ValidationException: carrying the pydantic error list under ``details["errors"]``.
    """
    try:
        payload = UploadPayload.model_validate(data)
    except ValidationError as e:
        raise ValidationException(
            "Invalid upload payload",
            details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        ) from e

    if max_clips is not None and len(payload.clips) > max_clips:
        raise ValidationException(
            f"At most {max_clips} clips may be submitted per request",
            details={"clips": len(payload.clips), "max_clips": max_clips},
        )
    return payload
