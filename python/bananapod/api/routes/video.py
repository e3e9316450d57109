"""Video generation routes (start + poll/finalize)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, sessionmaker

from bananapod.api.deps import (
    get_db,
    get_genai_client,
    get_media_store,
    get_operation_store,
    get_session_factory,
    get_settings_from_app,
)
from bananapod.auth.middleware import Viewer, get_viewer
from bananapod.config import Settings
from bananapod.kv.video_ops import VideoOperationStoreBase
from bananapod.responses import success_response
from bananapod.schemas.video import VideoStartRequest
from bananapod.services.genai import GeminiMediaClient
from bananapod.services.media import resolve_image_ref
from bananapod.services.video import VideoService, require_prompt
from bananapod.storage.client import MediaStoreBase

router = APIRouter()


def get_video_service(
    genai_client: Annotated[GeminiMediaClient, Depends(get_genai_client)],
    media_store: Annotated[MediaStoreBase, Depends(get_media_store)],
    operation_store: Annotated[VideoOperationStoreBase, Depends(get_operation_store)],
    session_factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
    settings: Annotated[Settings, Depends(get_settings_from_app)],
) -> VideoService:
    return VideoService(
        genai_client,
        media_store,
        operation_store,
        session_factory,
        handle_ttl_s=settings.video_op_ttl_s,
        poll_interval_s=settings.video_poll_interval_s,
    )


@router.post("/api/video/start")
async def start_video(
    body: VideoStartRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    media_store: Annotated[MediaStoreBase, Depends(get_media_store)],
    video_service: Annotated[VideoService, Depends(get_video_service)],
) -> dict:
    """Start a video generation and return its operation name.

    Errors:
        E_INVALID_REQUEST (400): Missing prompt.
        E_NOT_FOUND (404): The image reference is missing or not owned.
        E_UPSTREAM_FAILURE (502): The provider refused the job.
    """
    prompt = require_prompt(body.prompt)
    image = None
    if body.image is not None:
        image = await resolve_image_ref(db, media_store, viewer.user_key, body.image)

    result = await video_service.start(viewer.user_key, prompt, body.aspect_ratio, image)
    return success_response(result.model_dump(by_alias=True))


@router.get("/api/video/status")
async def video_status(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    video_service: Annotated[VideoService, Depends(get_video_service)],
    name: str | None = Query(default=None, description="Operation name from /api/video/start"),
) -> dict:
    """Poll a video operation once; finalize it into history when ready.

    Errors:
        E_INVALID_REQUEST (400): Missing name.
        E_NOT_FOUND (404): Unknown, expired or foreign operation.
        E_UPSTREAM_FAILURE (502): Provider failure or finished job without output.
    """
    result = await video_service.status(viewer.user_key, name)
    return success_response(result.model_dump(by_alias=True, exclude_none=True))
