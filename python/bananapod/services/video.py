"""Long-running video generation.

Start:
- Calls the provider's predictLongRunning endpoint
- Stores a handle {userKey, prompt} under the operation name with a TTL

Status (client-driven polling, ~10s cadence):
- Handle missing or owned by someone else -> E_NOT_FOUND
- Polls the provider exactly once per call
- Not done -> {done: false, pollAfterSeconds}
- Failed -> {done: true, error}; no record is written
- Succeeded -> claim the handle, download, put blob, insert kind="video"
  record, delete handle. A poll that loses the claim reports not done.

Handles that are never finalized expire on their own.
"""

from collections.abc import Callable
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from bananapod.db.models import HistoryKind, HistoryRecord, epoch_ms
from bananapod.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from bananapod.kv.video_ops import VideoOperationHandle, VideoOperationStoreBase
from bananapod.logging import get_logger
from bananapod.schemas.video import VideoStartOut, VideoStatusOut
from bananapod.services import history as history_service
from bananapod.services.genai.client import GeminiMediaClient
from bananapod.services.genai.errors import UpstreamError, UpstreamErrorClass
from bananapod.services.genai.types import ImageInput, VideoAspectRatio
from bananapod.storage.client import MediaStoreBase, StorageError, compute_etag
from bananapod.storage.paths import build_blob_key

logger = get_logger(__name__)

# Upper bound on one finalization (download, blob put, insert).
FINALIZE_CLAIM_TTL_S = 5 * 60


def require_prompt(prompt: str | None) -> str:
    """Return the trimmed prompt, or raise if there is none."""
    prompt = (prompt or "").strip()
    if not prompt:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Missing prompt")
    return prompt


class VideoService:
    """Start and finalize video operations for one user."""

    def __init__(
        self,
        genai_client: GeminiMediaClient,
        media_store: MediaStoreBase,
        operation_store: VideoOperationStoreBase,
        session_factory: sessionmaker[Session],
        *,
        handle_ttl_s: int = 60 * 60 * 24,
        poll_interval_s: int = 10,
        clock: Callable[[], int] = epoch_ms,
    ):
        self._genai = genai_client
        self._media_store = media_store
        self._operations = operation_store
        self._session_factory = session_factory
        self._handle_ttl_s = handle_ttl_s
        self._poll_interval_s = poll_interval_s
        self._clock = clock

    async def start(
        self,
        user_key: str,
        prompt: str | None,
        aspect_ratio: VideoAspectRatio,
        image: ImageInput | None = None,
    ) -> VideoStartOut:
        """Start a video operation and remember who owns it.

        Raises:
            InvalidRequestError: Missing prompt.
            UpstreamError: The provider refused or returned no operation name.
        """
        prompt = require_prompt(prompt)
        operation_name = await self._genai.start_video(prompt, aspect_ratio, image)
        await self._operations.put(
            VideoOperationHandle(operation_name=operation_name, user_key=user_key, prompt=prompt),
            self._handle_ttl_s,
        )
        return VideoStartOut(operation_name=operation_name)

    async def status(self, user_key: str, operation_name: str | None) -> VideoStatusOut:
        """Poll an owned operation once, finalizing it if the video is ready."""
        if not operation_name:
            raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Missing name")

        handle = await self._operations.get(operation_name)
        if handle is None or handle.user_key != user_key:
            raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Operation not found")

        poll = await self._genai.poll_video(operation_name)
        if not poll.done:
            return VideoStatusOut(done=False, poll_after_seconds=self._poll_interval_s)
        if poll.error:
            logger.info("video_operation_failed", operation_name=operation_name)
            return VideoStatusOut(done=True, error=poll.error)
        if not poll.output_uri:
            raise UpstreamError(UpstreamErrorClass.BAD_RESPONSE, "No download link found")

        if not await self._operations.claim(operation_name, FINALIZE_CLAIM_TTL_S):
            logger.info("video_operation_claimed_elsewhere", operation_name=operation_name)
            return VideoStatusOut(done=False, poll_after_seconds=self._poll_interval_s)

        try:
            return await self._finalize(handle, poll.output_uri)
        except Exception:
            await self._operations.release(operation_name)
            raise

    async def _finalize(self, handle: VideoOperationHandle, output_uri: str) -> VideoStatusOut:
        data, mime_type = await self._genai.download_video(output_uri)

        artifact_id = str(uuid4())
        blob_key = build_blob_key(handle.user_key, artifact_id, mime_type)
        await self._media_store.put_object(blob_key, data, content_type=mime_type)

        record = HistoryRecord(
            id=artifact_id,
            user_key=handle.user_key,
            kind=HistoryKind.video.value,
            prompt=handle.prompt,
            created_at=self._clock(),
            blob_key=blob_key,
            mime_type=mime_type,
            etag=compute_etag(data),
        )
        try:
            await run_in_threadpool(self._insert, record)
        except SQLAlchemyError as e:
            raise StorageError("Failed to record history item") from e
        await self._operations.delete(handle.operation_name)

        logger.info(
            "video_operation_finalized",
            operation_name=handle.operation_name,
            history_id=artifact_id,
        )
        return VideoStatusOut(
            done=True,
            media_id=artifact_id,
            media_url=history_service.media_url(artifact_id),
            mime_type=mime_type,
        )

    def _insert(self, record: HistoryRecord) -> None:
        with self._session_factory() as db:
            history_service.insert_record(db, record)
