from fastapi import APIRouter, Depends, Query, Request

from app.schemas.clips import ClipListResponse, ErrorResponse, IngestResponse
from app.services.clip_services import ingest_clips, list_clips
from clipvault.container import ServiceContainer

router = APIRouter(prefix="/api/clips", tags=["clips"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    500: {"model": ErrorResponse, "description": "Clip processing or persistence failed"},
    502: {"model": ErrorResponse, "description": "Source media or embeddings could not be obtained"},
}


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


@router.post("", response_model=IngestResponse, responses=ERROR_RESPONSES)
async def upload_clips(request: Request, container: ServiceContainer = Depends(get_container)):
    """Ingest a source video (uploaded or by URL) and store one clip per requested frame range."""
    return await ingest_clips(request, container.pipeline, max_clips=container.config.video.max_clips)


@router.get("", response_model=ClipListResponse, responses={400: ERROR_RESPONSES[400]})
async def get_clips(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    container: ServiceContainer = Depends(get_container),
):
    return await list_clips(container.pipeline, limit=limit, offset=offset)
