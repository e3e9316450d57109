"""History ledger response schemas."""

from typing import Literal

from bananapod.schemas.common import ApiModel


class HistoryItemOut(ApiModel):
    """One history entry as shown to its owner.

    The blob key is internal and never exposed; clients fetch bytes through
    media_url.
    """

    id: str
    kind: Literal["image", "video"]
    prompt: str
    created_at: int  # epoch ms
    mime_type: str
    media_url: str
    width: int | None = None
    height: int | None = None
    text_note: str | None = None


class HistoryPageOut(ApiModel):
    """A page of history entries, newest first."""

    items: list[HistoryItemOut]
    next_cursor: str | None = None
