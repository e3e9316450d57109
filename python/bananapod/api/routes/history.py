"""History routes: owner-scoped listing and deletion."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from bananapod.api.deps import get_db, get_media_store
from bananapod.auth.middleware import Viewer, get_viewer
from bananapod.responses import success_response
from bananapod.schemas.common import OkResponse
from bananapod.services import history as history_service
from bananapod.services import media as media_service
from bananapod.storage.client import MediaStoreBase

router = APIRouter()


@router.get("/api/history")
async def list_history(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    limit: int = Query(
        default=history_service.DEFAULT_LIMIT, description="Page size (clamped to 1-50)"
    ),
    cursor: str | None = Query(default=None, description="Pagination cursor"),
) -> dict:
    """List the viewer's history, newest first.

    Errors:
        E_INVALID_CURSOR (400): Cursor is malformed or unparseable.
    """
    page = await run_in_threadpool(
        history_service.list_page, db, viewer.user_key, limit, cursor
    )
    return success_response(page.to_out().model_dump(by_alias=True))


@router.delete("/api/history/{history_id}")
async def delete_history(
    history_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    media_store: Annotated[MediaStoreBase, Depends(get_media_store)],
) -> dict:
    """Delete a history item and its blob (row first).

    Errors:
        E_NOT_FOUND (404): Item doesn't exist or belongs to another user.
        E_STORAGE_ERROR (500): Row deleted but the blob delete failed.
    """
    await media_service.delete_history_item(db, media_store, viewer.user_key, history_id)
    return success_response(OkResponse().model_dump())
