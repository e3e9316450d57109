"""Test helpers.

Provides:
- Well-known user keys
- Image bytes generated with Pillow
- ScriptedGenaiClient: a provider double returning queued outcomes
- RecordingEventSink: collects orchestrator events in order
- SSE body parsing and direct history seeding
"""

import base64
import io
import json

from PIL import Image
from sqlalchemy.orm import Session

from bananapod.db.models import HistoryRecord
from bananapod.services.generation import EventSink
from bananapod.services.genai.types import (
    Declined,
    GenOutcome,
    ImageConfig,
    ImageInput,
    Produced,
    VideoPoll,
)
from bananapod.storage.client import compute_etag

ALICE = "alice-key"
BOB = "bob-key"


def make_png(width: int = 4, height: int = 3, color: str = "red") -> bytes:
    """Encode a solid-color PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def produced(data: bytes | None = None, note: str | None = None) -> Produced:
    return Produced(data=data or make_png(), mime_type="image/png", text_note=note)


def declined(note: str = "The AI did not generate an image. Please try a different prompt."):
    return Declined(text_note=note)


class ScriptedGenaiClient:
    """Provider double with the GeminiMediaClient interface.

    Outcomes are consumed in order; an Exception in the queue is raised
    instead of returned. When the queue is empty a fresh PNG is produced.
    """

    def __init__(self) -> None:
        self.outcomes: list[GenOutcome | Exception] = []
        self.calls: list[dict] = []
        self.operation_name = "models/veo/operations/op-1"
        self.polls: list[VideoPoll | Exception] = []
        self.video_bytes = b"\x00\x00\x00\x18ftypmp42"
        self.video_mime = "video/mp4"

    def queue(self, *outcomes: GenOutcome | Exception) -> None:
        self.outcomes.extend(outcomes)

    def _next(self) -> GenOutcome:
        if not self.outcomes:
            return produced()
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def generate_from_text(self, prompt: str, image_config: ImageConfig | None = None):
        self.calls.append({"op": "generate", "prompt": prompt, "image_config": image_config})
        return self._next()

    async def edit_image(
        self,
        prompt: str,
        images: list[ImageInput],
        mask: ImageInput | None = None,
        image_config: ImageConfig | None = None,
    ):
        self.calls.append(
            {
                "op": "edit",
                "prompt": prompt,
                "images": images,
                "mask": mask,
                "image_config": image_config,
            }
        )
        return self._next()

    async def start_video(self, prompt: str, aspect_ratio: str, image: ImageInput | None = None):
        self.calls.append(
            {"op": "start_video", "prompt": prompt, "aspect_ratio": aspect_ratio, "image": image}
        )
        return self.operation_name

    async def poll_video(self, operation_name: str) -> VideoPoll:
        self.calls.append({"op": "poll_video", "operation_name": operation_name})
        poll = self.polls.pop(0) if self.polls else VideoPoll(done=False)
        if isinstance(poll, Exception):
            raise poll
        return poll

    async def download_video(self, uri: str) -> tuple[bytes, str]:
        self.calls.append({"op": "download_video", "uri": uri})
        return self.video_bytes, self.video_mime


class RecordingEventSink(EventSink):
    """Collects (event, payload) pairs in emission order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    async def emit(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def parse_sse(body: str) -> list[tuple[str, dict]]:
    """Split an SSE body into (event, data) pairs."""
    events = []
    for block in body.strip().split("\n\n"):
        name = None
        data = None
        for line in block.splitlines():
            if line.startswith("event: "):
                name = line[len("event: ") :]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: ") :])
        if name is not None:
            events.append((name, data))
    return events


def seed_history(
    db: Session,
    user_key: str,
    id: str,
    created_at: int,
    *,
    kind: str = "image",
    mime_type: str = "image/png",
    prompt: str = "a banana",
    data: bytes = b"",
) -> HistoryRecord:
    """Insert a ledger row directly (no blob)."""
    record = HistoryRecord(
        id=id,
        user_key=user_key,
        kind=kind,
        prompt=prompt,
        created_at=created_at,
        blob_key=f"{user_key}/{id}.png",
        mime_type=mime_type,
        etag=compute_etag(data),
    )
    db.add(record)
    db.commit()
    return record
