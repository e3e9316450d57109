"""Media streaming route."""

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from bananapod.api.deps import get_db, get_media_store
from bananapod.auth.middleware import Viewer, get_viewer
from bananapod.services import media as media_service
from bananapod.storage.client import MediaStoreBase

router = APIRouter()

# Artifacts never change once written, so any cache may keep them.
MEDIA_CACHE_CONTROL = "public, max-age=31536000, immutable"


@router.get("/api/media/{media_id}", response_class=Response)
async def get_media(
    media_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    media_store: Annotated[MediaStoreBase, Depends(get_media_store)],
    if_none_match: Annotated[str | None, Header()] = None,
) -> Response:
    """Stream an owned artifact's bytes.

    Supports conditional GET: a matching If-None-Match returns an empty 304.

    Errors:
        E_NOT_FOUND (404): Unknown id, foreign owner, or missing blob.
    """
    result = await media_service.load_media_for_viewer(
        db, media_store, viewer.user_key, media_id, if_none_match=if_none_match
    )

    headers = {
        "ETag": result.etag,
        "Cache-Control": MEDIA_CACHE_CONTROL,
        "Accept-Ranges": "bytes",
    }

    if result.not_modified:
        return Response(status_code=304, headers=headers)

    if result.content_length is not None:
        headers["Content-Length"] = str(result.content_length)
    return StreamingResponse(result.body, media_type=result.content_type, headers=headers)
