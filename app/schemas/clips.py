from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClipResponse(BaseModel):
    id: int
    origin_id: str
    start_frame: int
    end_frame: int
    description: str
    video_url: str
    animation_url: Optional[str] = None
    embedding: List[float]
    created_at: datetime
    updated_at: datetime


class IngestResponse(BaseModel):
    clips: List[ClipResponse]


class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    limit: int
    offset: int
    has_more: bool = Field(..., alias="hasMore")


class ClipListResponse(BaseModel):
    clips: List[ClipResponse]
    pagination: Pagination


class ErrorResponse(BaseModel):
    error: str
    code: str
    details: Dict[str, Any] = Field(default_factory=dict)
