"""Image generation route.

POST /api/generate/image runs a generate or edit request either as a batch
(one JSON response) or as an SSE stream, selected by `"stream": true` or an
`Accept: text/event-stream` header.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Header
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from bananapod.api.deps import get_db, get_genai_client, get_media_store, get_session_factory
from bananapod.auth.middleware import Viewer, get_viewer
from bananapod.responses import success_response
from bananapod.schemas.generation import GenerateImageRequest
from bananapod.services import generation as generation_service
from bananapod.services.genai import GeminiMediaClient
from bananapod.storage.client import MediaStoreBase

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


@router.post("/api/generate/image", response_model=None)
async def generate_image(
    body: GenerateImageRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    genai_client: Annotated[GeminiMediaClient, Depends(get_genai_client)],
    media_store: Annotated[MediaStoreBase, Depends(get_media_store)],
    session_factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
    accept: Annotated[str | None, Header()] = None,
) -> dict | StreamingResponse:
    """Generate or edit images.

    Validation (prompt, images, image references) completes before the
    first provider call, so these errors are plain JSON even when streaming
    was requested.

    Errors:
        E_INVALID_REQUEST (400): Missing prompt, or edit without images.
        E_NOT_FOUND (404): An image reference is missing or not owned.
        E_UPSTREAM_FAILURE (502) / E_UPSTREAM_TIMEOUT (504): Batch mode only.
        E_STORAGE_ERROR (500): Batch mode only.
    """
    job = await generation_service.prepare_job(db, media_store, viewer.user_key, body)
    orchestrator = generation_service.GenerationOrchestrator(
        genai_client, media_store, session_factory
    )

    if generation_service.wants_stream(body.stream, accept):
        return StreamingResponse(
            generation_service.stream_generation(orchestrator, job),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    result = await orchestrator.run_batch(job)
    return success_response(result.to_wire())
