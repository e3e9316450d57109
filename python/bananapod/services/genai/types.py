"""Shared type definitions for the upstream generation client.

- ImageConfig: optional aspect ratio / size hints for image models
- ImageInput: raw image bytes handed to the provider (source images, masks)
- Produced / Declined: tagged outcome of one generation call
- VideoPoll: one observation of a long-running video operation

Outcome invariants:
- A response without an image payload is Declined, never an exception
- Produced.data is raw bytes (already base64-decoded)
"""

from dataclasses import dataclass
from typing import Literal

ImageAspectRatio = Literal["1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9"]
ImageSize = Literal["1K", "2K", "4K"]
VideoAspectRatio = Literal["16:9", "9:16"]


@dataclass(frozen=True)
class ImageConfig:
    """Image generation hints. Unset fields are omitted from the request."""

    aspect_ratio: ImageAspectRatio | None = None
    image_size: ImageSize | None = None

    def to_wire(self) -> dict[str, str]:
        wire: dict[str, str] = {}
        if self.aspect_ratio:
            wire["aspectRatio"] = self.aspect_ratio
        if self.image_size:
            wire["imageSize"] = self.image_size
        return wire


@dataclass(frozen=True)
class ImageInput:
    """An image sent to the provider.

    Attributes:
        data: Raw image bytes
        mime_type: e.g. "image/png"
    """

    data: bytes
    mime_type: str


@dataclass(frozen=True)
class Produced:
    """The provider returned media.

    Attributes:
        data: Decoded media bytes
        mime_type: MIME type reported by the provider
        text_note: Accompanying text part, if any
    """

    data: bytes
    mime_type: str
    text_note: str | None = None


@dataclass(frozen=True)
class Declined:
    """The provider answered but produced no media (blocked or empty)."""

    text_note: str


GenOutcome = Produced | Declined


@dataclass(frozen=True)
class VideoPoll:
    """Observation of a long-running video operation.

    Attributes:
        done: Whether the operation reached a terminal state
        error: Provider error message for a failed terminal state
        output_uri: Download URI of the first generated sample, when done
    """

    done: bool
    error: str | None = None
    output_uri: str | None = None
