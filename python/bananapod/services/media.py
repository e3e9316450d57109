"""Media service layer.

- Streaming artifact bytes to their owner with ETag / conditional GET support
- Deleting history items (row first, then blob)
- Resolving client image references into provider inputs
- Reading image dimensions with Pillow

All functions enforce ownership: a foreign id is reported as E_NOT_FOUND.
"""

import base64
import binascii
import io
from collections.abc import AsyncIterator
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from bananapod.db.models import HistoryRecord
from bananapod.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from bananapod.logging import get_logger
from bananapod.schemas.common import DataUrlRef, ImageRef, MediaIdRef
from bananapod.services import history as history_service
from bananapod.services.genai.types import ImageInput
from bananapod.storage.client import MediaStoreBase, etags_match

logger = get_logger(__name__)


@dataclass
class MediaResponse:
    """Body and caching metadata for one artifact.

    Attributes:
        content_type: The record's MIME type
        etag: Quoted SHA-256 of the bytes, recorded when the artifact was stored
        body: Blob chunks; None if not_modified
        content_length: Blob size when the store reports it
        not_modified: True if the client's If-None-Match matched
    """

    content_type: str
    etag: str
    body: AsyncIterator[bytes] | None = None
    content_length: int | None = None
    not_modified: bool = False


async def load_media_for_viewer(
    db: Session,
    media_store: MediaStoreBase,
    user_key: str,
    media_id: str,
    if_none_match: str | None = None,
) -> MediaResponse:
    """Open an owned artifact for streaming.

    The ETag comes from the ledger row, so a conditional hit never touches
    the blob store.

    Raises:
        NotFoundError: Unknown id, foreign owner, or blob missing from the store.
        StorageError: The store failed for another reason.
    """
    record = await run_in_threadpool(history_service.get_owned_or_404, db, user_key, media_id)

    if if_none_match and etags_match(if_none_match, record.etag):
        return MediaResponse(content_type=record.mime_type, etag=record.etag, not_modified=True)

    stream = await media_store.open_object(record.blob_key)
    if stream is None:
        logger.warning("media_blob_missing", history_id=record.id)
        raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Not found")

    return MediaResponse(
        content_type=record.mime_type,
        etag=record.etag,
        body=stream.iter_chunks(),
        content_length=stream.content_length,
    )


async def delete_history_item(
    db: Session,
    media_store: MediaStoreBase,
    user_key: str,
    history_id: str,
) -> HistoryRecord:
    """Delete an owned history item: the row first, then its blob.

    Ownership is checked before anything is deleted. If the blob delete fails
    the row is already gone and StorageError propagates; the blob is left
    orphaned rather than the row dangling.
    """
    await run_in_threadpool(history_service.get_owned_or_404, db, user_key, history_id)

    record = await run_in_threadpool(history_service.delete_by_id, db, history_id)
    if record is None:
        # Deleted concurrently between the check and the delete.
        raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Not found")

    await media_store.delete_object(record.blob_key)
    logger.info("history_item_deleted", history_id=history_id)
    return record


def strip_data_url(data_url: str) -> str:
    """Return the base64 payload of a data URL (or the input if it has no comma)."""
    _, sep, payload = data_url.partition(",")
    return payload if sep else data_url


async def resolve_image_ref(
    db: Session,
    media_store: MediaStoreBase,
    user_key: str,
    ref: ImageRef,
) -> ImageInput:
    """Turn a client image reference into raw bytes for the provider.

    Raises:
        InvalidRequestError: Inline data is not valid base64.
        NotFoundError: A mediaId reference is missing, foreign, or has no blob.
    """
    if isinstance(ref, DataUrlRef):
        try:
            data = base64.b64decode(strip_data_url(ref.data_url), validate=True)
        except (binascii.Error, ValueError):
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_REQUEST, "Invalid image data"
            ) from None
        return ImageInput(data=data, mime_type=ref.mime_type)

    assert isinstance(ref, MediaIdRef)
    record = await run_in_threadpool(history_service.get_by_id, db, ref.media_id)
    if record is None or record.user_key != user_key:
        raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Media not found")

    stored = await media_store.get_object(record.blob_key)
    if stored is None:
        raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Media not found")
    return ImageInput(data=stored.data, mime_type=record.mime_type)


def read_image_dimensions(data: bytes) -> tuple[int | None, int | None]:
    """Return (width, height) if Pillow can identify the image, else (None, None)."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return None, None
    return width, height
