import json
from typing import Any, Dict, Optional

from fastapi import Request
from loguru import logger
from starlette.datastructures import FormData, UploadFile

from clipvault.exceptions import ValidationException
from clipvault.pipeline.ingestion import ClipIngestionPipeline
from clipvault.pipeline.models import IngestionRequest, MediaSource, RemoteSource, UploadedSource
from clipvault.utils.validation import UploadPayload, parse_upload_payload


def _form_file(form: FormData, *names: str) -> Optional[UploadFile]:
    for name in names:
        value = form.get(name)
        if isinstance(value, UploadFile):
            return value
    return None


def _choose_source(
    upload: Optional[UploadFile], url: Optional[str], label: str, required: bool
) -> Optional[MediaSource]:
    if upload is not None and url:
        raise ValidationException(f"Provide either an uploaded {label} file or a {label} URL, not both")
    if upload is not None:
        return UploadedSource(stream=upload, filename=upload.filename)
    if url:
        return RemoteSource(url=url)
    if required:
        raise ValidationException(f"A {label} file or URL is required")
    return None


def request_from_form(form: FormData, max_clips: int) -> IngestionRequest:
    """Build an ingestion request from ``payload``/``metadata``, ``video``/``file`` and ``animation`` fields."""
    raw = form.get("payload")
    if raw is None:
        raw = form.get("metadata")
    if not isinstance(raw, str):
        raise ValidationException("Expected JSON payload under form field `payload`")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationException("Invalid JSON payload", details={"reason": str(e)}) from e

    payload = parse_upload_payload(data, max_clips=max_clips)
    video = _choose_source(_form_file(form, "video", "file"), payload.origin_url, "video", required=True)
    animation = _choose_source(_form_file(form, "animation"), payload.anim_url, "animation", required=False)
    return IngestionRequest(payload=payload, video=video, animation=animation)


def request_from_json(data: Any, max_clips: int) -> IngestionRequest:
    payload: UploadPayload = parse_upload_payload(data, max_clips=max_clips)
    if not payload.origin_url:
        raise ValidationException("origin_url is required when no video file is uploaded")
    animation = RemoteSource(url=payload.anim_url) if payload.anim_url else None
    return IngestionRequest(payload=payload, video=RemoteSource(url=payload.origin_url), animation=animation)


async def ingest_clips(request: Request, pipeline: ClipIngestionPipeline, max_clips: int) -> Dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    logger.debug(f"Incoming /api/clips request ({content_type or 'no content type'})")

    if "multipart/form-data" in content_type:
        async with request.form() as form:
            ingestion_request = request_from_form(form, max_clips)
            persisted = await pipeline.ingest(ingestion_request)
    else:
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationException("Invalid JSON body") from e
        ingestion_request = request_from_json(data, max_clips)
        persisted = await pipeline.ingest(ingestion_request)

    return {"clips": [clip.to_dict() for clip in persisted]}


async def list_clips(pipeline: ClipIngestionPipeline, limit: int, offset: int) -> Dict[str, Any]:
    page = await pipeline.list_clips(limit=limit, offset=offset)
    return {
        "clips": [clip.to_dict() for clip in page.clips],
        "pagination": {
            "total": page.total,
            "limit": page.limit,
            "offset": page.offset,
            "hasMore": page.has_more,
        },
    }
