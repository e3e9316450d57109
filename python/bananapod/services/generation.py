"""Image generation orchestrator.

Runs one generate/edit request: validates input, calls the provider `count`
times in sequence, persists each produced image (blob first, then ledger row)
and reports results either aggregated or as an ordered event stream.

Per-request state machine (in memory only):
    RECEIVED -> VALIDATED -> (CALLING_UPSTREAM -> PERSISTING -> EMITTED) x count
             -> COMPLETED | FAILED

SSE Events:
- start: {"ok": true, "requested": N}
- item:  {"mediaId", "mediaUrl", "mimeType", "textNote", "index"}
- skip:  {"index", "textNote"[, "error"]}
- done:  {"ok", "producedCount", "lastTextNote"}
- error: {"message"}   (terminal, replaces done)

Committed iterations are never rolled back, including when the client
disconnects mid-stream (the in-flight provider call is cancelled).
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from bananapod.db.models import HistoryKind, HistoryRecord, epoch_ms
from bananapod.errors import ApiErrorCode, InvalidRequestError
from bananapod.logging import get_logger
from bananapod.schemas.generation import (
    GeneratedItemOut,
    GenerateImageRequest,
    GenerateImageResponse,
)
from bananapod.services import history as history_service
from bananapod.services.genai.client import GeminiMediaClient
from bananapod.services.genai.errors import UpstreamError
from bananapod.services.genai.types import Declined, GenOutcome, ImageConfig, ImageInput, Produced
from bananapod.services.media import read_image_dimensions, resolve_image_ref
from bananapod.storage.client import MediaStoreBase, StorageError, compute_etag
from bananapod.storage.paths import build_blob_key

logger = get_logger(__name__)

UNEXPECTED_STREAM_ERROR = "Generation failed unexpectedly."


def format_sse_event(event: str, data: dict) -> str:
    """Format data as an SSE event."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def wants_stream(stream_flag: bool | None, accept: str | None) -> bool:
    """Streaming is selected by an explicit flag or an SSE Accept header."""
    return stream_flag is True or "text/event-stream" in (accept or "")


# =============================================================================
# Event sinks
# =============================================================================


class EventSink(ABC):
    """Destination for ordered generation events."""

    @abstractmethod
    async def emit(self, event: str, payload: dict) -> None: ...


class QueueEventSink(EventSink):
    """Sink feeding an SSE response.

    Each event is queued already framed; None marks the end of the stream.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue[str | None] = asyncio.Queue()

    async def emit(self, event: str, payload: dict) -> None:
        await self.queue.put(format_sse_event(event, payload))

    def close(self) -> None:
        self.queue.put_nowait(None)


# =============================================================================
# Orchestrator
# =============================================================================


@dataclass
class GenerationJob:
    """A validated generation request."""

    user_key: str
    prompt: str
    action: str
    count: int
    image_config: ImageConfig | None = None
    images: list[ImageInput] = field(default_factory=list)
    mask: ImageInput | None = None


async def prepare_job(
    db: Session,
    media_store: MediaStoreBase,
    user_key: str,
    body: GenerateImageRequest,
) -> GenerationJob:
    """Validate a request and resolve its image references.

    All checks run before any provider call or write.

    Raises:
        InvalidRequestError: Missing prompt, or an edit without images.
        NotFoundError: An image reference is missing or owned by someone else.
    """
    prompt = (body.prompt or "").strip()
    if not prompt:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Missing prompt")

    image_config = None
    if body.image_config is not None:
        image_config = ImageConfig(
            aspect_ratio=body.image_config.aspect_ratio,
            image_size=body.image_config.image_size,
        )

    images: list[ImageInput] = []
    mask: ImageInput | None = None
    if body.action == "edit":
        if not body.images:
            raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Missing images for edit")
        images = [await resolve_image_ref(db, media_store, user_key, ref) for ref in body.images]
        if body.mask is not None:
            mask = await resolve_image_ref(db, media_store, user_key, body.mask)

    return GenerationJob(
        user_key=user_key,
        prompt=prompt,
        action=body.action,
        count=body.count,
        image_config=image_config,
        images=images,
        mask=mask,
    )


class GenerationOrchestrator:
    """Drives provider calls and persistence for one generation request."""

    def __init__(
        self,
        genai_client: GeminiMediaClient,
        media_store: MediaStoreBase,
        session_factory: sessionmaker[Session],
        *,
        clock: Callable[[], int] = epoch_ms,
    ):
        self._genai = genai_client
        self._media_store = media_store
        self._session_factory = session_factory
        self._clock = clock

    async def run_batch(self, job: GenerationJob) -> GenerateImageResponse:
        """Run all iterations and return the aggregate.

        Declined iterations are omitted. Any exception aborts the remaining
        iterations; already persisted items stay.
        """
        items: list[GeneratedItemOut] = []
        last_text_note: str | None = None

        for index in range(job.count):
            outcome = await self._call_upstream(job)
            last_text_note = outcome.text_note or last_text_note
            if isinstance(outcome, Declined):
                logger.info("generation_declined", index=index)
                continue
            items.append(await self._persist(job, outcome))

        if not items:
            return GenerateImageResponse(ok=False, text_note=last_text_note)
        return GenerateImageResponse(ok=True, items=items)

    async def run_stream(self, job: GenerationJob, sink: EventSink) -> None:
        """Run all iterations, emitting one event per iteration as it completes.

        A provider or storage failure in one iteration becomes a skip event
        and the loop continues. Anything else ends the stream with an error
        event.
        """
        produced_count = 0
        last_text_note: str | None = None

        try:
            await sink.emit("start", {"ok": True, "requested": job.count})

            for index in range(job.count):
                try:
                    outcome = await self._call_upstream(job)
                    last_text_note = outcome.text_note or last_text_note
                    if isinstance(outcome, Declined):
                        await sink.emit("skip", {"index": index, "textNote": outcome.text_note})
                        continue
                    item = await self._persist(job, outcome)
                except UpstreamError as e:
                    logger.warning(
                        "generation_iteration_failed",
                        index=index,
                        error_class=e.error_class.value,
                    )
                    await sink.emit(
                        "skip",
                        {"index": index, "textNote": e.message, "error": e.error_class.value},
                    )
                    continue
                except StorageError as e:
                    logger.error("generation_persist_failed", index=index, error=e.message)
                    await sink.emit(
                        "skip",
                        {"index": index, "textNote": "Storage error", "error": e.code},
                    )
                    continue

                produced_count += 1
                await sink.emit("item", {**item.model_dump(by_alias=True), "index": index})

            await sink.emit(
                "done",
                {
                    "ok": produced_count > 0,
                    "producedCount": produced_count,
                    "lastTextNote": last_text_note,
                },
            )
        except asyncio.CancelledError:
            logger.info("generation_stream_cancelled", produced_count=produced_count)
            raise
        except Exception:
            logger.exception("generation_stream_failed", produced_count=produced_count)
            await sink.emit("error", {"message": UNEXPECTED_STREAM_ERROR})

    async def _call_upstream(self, job: GenerationJob) -> GenOutcome:
        if job.action == "edit":
            return await self._genai.edit_image(
                job.prompt, job.images, mask=job.mask, image_config=job.image_config
            )
        return await self._genai.generate_from_text(job.prompt, image_config=job.image_config)

    async def _persist(self, job: GenerationJob, produced: Produced) -> GeneratedItemOut:
        """Store the blob, then insert the ledger row."""
        artifact_id = str(uuid4())
        blob_key = build_blob_key(job.user_key, artifact_id, produced.mime_type)

        await self._media_store.put_object(
            blob_key, produced.data, content_type=produced.mime_type
        )

        width, height = await run_in_threadpool(read_image_dimensions, produced.data)
        record = HistoryRecord(
            id=artifact_id,
            user_key=job.user_key,
            kind=HistoryKind.image.value,
            prompt=job.prompt,
            created_at=self._clock(),
            blob_key=blob_key,
            mime_type=produced.mime_type,
            etag=compute_etag(produced.data),
            width=width,
            height=height,
            extra_json=json.dumps({"textNote": produced.text_note}) if produced.text_note else None,
        )
        try:
            await run_in_threadpool(self._insert, record)
        except SQLAlchemyError as e:
            # The blob stays behind as an orphan.
            raise StorageError("Failed to record history item") from e
        logger.info("generation_item_persisted", history_id=artifact_id)

        return GeneratedItemOut(
            media_id=artifact_id,
            media_url=history_service.media_url(artifact_id),
            mime_type=produced.mime_type,
            text_note=produced.text_note,
        )

    def _insert(self, record: HistoryRecord) -> None:
        with self._session_factory() as db:
            history_service.insert_record(db, record)


async def stream_generation(
    orchestrator: GenerationOrchestrator, job: GenerationJob
) -> AsyncIterator[str]:
    """Bridge run_stream onto an SSE body.

    The orchestrator runs as its own task; if the client goes away the
    generator is closed and the task is cancelled.
    """
    sink = QueueEventSink()
    task = asyncio.create_task(orchestrator.run_stream(job, sink))
    task.add_done_callback(lambda _: sink.close())

    try:
        while True:
            chunk = await sink.queue.get()
            if chunk is None:
                break
            yield chunk
    finally:
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)
