"""Video generation request/response schemas."""

from typing import Literal

from bananapod.schemas.common import ApiModel, ImageRef


class VideoStartRequest(ApiModel):
    """Start a long-running video generation."""

    prompt: str | None = None
    aspect_ratio: Literal["16:9", "9:16"] = "16:9"
    image: ImageRef | None = None


class VideoStartOut(ApiModel):
    ok: bool = True
    operation_name: str


class VideoStatusOut(ApiModel):
    """Result of one status poll.

    Not done: done=false plus poll_after_seconds.
    Failed: done=true plus error.
    Finalized: done=true plus the new artifact's media fields.
    """

    ok: bool = True
    done: bool
    error: str | None = None
    media_id: str | None = None
    media_url: str | None = None
    mime_type: str | None = None
    poll_after_seconds: int | None = None
