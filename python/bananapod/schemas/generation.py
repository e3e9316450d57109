"""Image generation request/response schemas.

Request body for POST /api/generate/image:
{
  "action": "generate" | "edit",          # default "generate"
  "prompt": "...",
  "count": 1..5,                            # clamped; non-numeric -> 1
  "stream": true,                           # or Accept: text/event-stream
  "imageConfig": {"aspectRatio": "16:9", "imageSize": "2K"},
  "images": [ImageRef, ...],                # required for edit
  "mask": ImageRef                          # optional, edit only
}
"""

import math
from typing import Any, Literal

from pydantic import field_validator

from bananapod.schemas.common import ApiModel, ImageRef
from bananapod.services.genai.types import ImageAspectRatio, ImageSize

MIN_COUNT = 1
MAX_COUNT = 5


def normalize_count(value: Any) -> int:
    """Coerce a client-supplied count into [MIN_COUNT, MAX_COUNT].

    Numbers (and numeric strings) are floored; anything else becomes 1.
    """
    if value is None:
        return MIN_COUNT
    try:
        number = float(value)
    except (TypeError, ValueError):
        return MIN_COUNT
    if not math.isfinite(number):
        return MIN_COUNT
    return max(MIN_COUNT, min(MAX_COUNT, math.floor(number)))


class ImageConfigIn(ApiModel):
    """Optional image model hints."""

    aspect_ratio: ImageAspectRatio | None = None
    image_size: ImageSize | None = None


class GenerateImageRequest(ApiModel):
    """Generate or edit request.

    prompt is validated by the orchestrator (trimmed, non-empty) so that a
    missing prompt yields "Missing prompt" rather than a schema error.
    """

    action: Literal["generate", "edit"] = "generate"
    prompt: str | None = None
    count: int = MIN_COUNT
    stream: bool | None = None
    image_config: ImageConfigIn | None = None
    images: list[ImageRef] = []
    mask: ImageRef | None = None

    @field_validator("count", mode="before")
    @classmethod
    def clamp_count(cls, value: Any) -> int:
        return normalize_count(value)


class GeneratedItemOut(ApiModel):
    """A persisted generation result."""

    media_id: str
    media_url: str
    mime_type: str
    text_note: str | None = None


class GenerateImageResponse(ApiModel):
    """Batch result: ok with items, or ok=false with the provider's note."""

    ok: bool
    items: list[GeneratedItemOut] | None = None
    text_note: str | None = None

    def to_wire(self) -> dict:
        if self.ok:
            return {"ok": True, "items": [i.model_dump(by_alias=True) for i in self.items or []]}
        return {"ok": False, "textNote": self.text_note}
