"""History ledger service layer.

Implements insert, point lookup, delete and owner-scoped listing of generated
artifacts.

Ownership:
- The raw ledger operations (get_by_id, delete_by_id) do not check ownership
- Callers enforce it; get_owned_or_404 reports foreign rows exactly like
  missing ones (E_NOT_FOUND) to prevent probing

Pagination:
- Total order (created_at DESC, id DESC)
- Continuation: created_at < c.created_at OR (created_at = c.created_at AND id < c.id)
- Fetches limit + 1 rows to detect whether another page exists
"""

import base64
import json
from dataclasses import dataclass

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from bananapod.db.models import HistoryRecord
from bananapod.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from bananapod.logging import get_logger
from bananapod.schemas.history import HistoryItemOut, HistoryPageOut

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

DEFAULT_LIMIT = 20
MIN_LIMIT = 1
MAX_LIMIT = 50


# =============================================================================
# Cursor Encoding/Decoding
# =============================================================================


def encode_history_cursor(created_at: int, id: str) -> str:
    """Encode a cursor for history pagination.

    Cursor payload: {"created_at": <epoch ms>, "id": "<id>"}
    Encoding: base64url without padding
    """
    payload = {"created_at": created_at, "id": id}
    json_bytes = json.dumps(payload).encode("utf-8")
    return base64.urlsafe_b64encode(json_bytes).decode("ascii").rstrip("=")


def decode_history_cursor(cursor: str) -> tuple[int, str]:
    """Decode a cursor for history pagination.

    Returns:
        Tuple of (created_at, id)

    Raises:
        InvalidRequestError: If cursor is malformed or unparseable.
    """
    try:
        # Add padding if needed
        padding = 4 - len(cursor) % 4
        if padding != 4:
            cursor += "=" * padding

        json_bytes = base64.urlsafe_b64decode(cursor)
        payload = json.loads(json_bytes.decode("utf-8"))

        created_at = payload["created_at"]
        id = payload["id"]
        if not isinstance(created_at, int) or isinstance(created_at, bool):
            raise ValueError("created_at must be an integer")
        if not isinstance(id, str) or not id:
            raise ValueError("id must be a non-empty string")
        return created_at, id
    except Exception:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_CURSOR, "Invalid cursor") from None


# =============================================================================
# Helper Functions
# =============================================================================


def clamp_limit(limit: int) -> int:
    """Clamp limit to valid range [MIN_LIMIT, MAX_LIMIT]."""
    return min(max(limit, MIN_LIMIT), MAX_LIMIT)


def media_url(id: str) -> str:
    """Public URL through which an artifact's bytes are served."""
    return f"/api/media/{id}"


def text_note_of(record: HistoryRecord) -> str | None:
    """Extract the provider note stored in extra_json, if any."""
    if not record.extra_json:
        return None
    try:
        extra = json.loads(record.extra_json)
    except ValueError:
        return None
    note = extra.get("textNote") if isinstance(extra, dict) else None
    return note if isinstance(note, str) else None


def to_history_item(record: HistoryRecord) -> HistoryItemOut:
    return HistoryItemOut(
        id=record.id,
        kind=record.kind,
        prompt=record.prompt,
        created_at=record.created_at,
        mime_type=record.mime_type,
        media_url=media_url(record.id),
        width=record.width,
        height=record.height,
        text_note=text_note_of(record),
    )


@dataclass(frozen=True)
class HistoryPage:
    """One page of ledger rows."""

    items: list[HistoryRecord]
    next_cursor: str | None

    def to_out(self) -> HistoryPageOut:
        return HistoryPageOut(
            items=[to_history_item(r) for r in self.items],
            next_cursor=self.next_cursor,
        )


# =============================================================================
# Ledger Operations
# =============================================================================


def insert_record(db: Session, record: HistoryRecord) -> None:
    """Insert a history row. The row's blob must already be stored."""
    db.add(record)
    db.commit()
    logger.info("history_record_inserted", history_id=record.id, kind=record.kind)


def get_by_id(db: Session, id: str) -> HistoryRecord | None:
    """Point lookup without ownership check."""
    return db.get(HistoryRecord, id)


def delete_by_id(db: Session, id: str) -> HistoryRecord | None:
    """Read-then-delete without ownership check.

    Returns:
        The deleted row, or None if it did not exist.
    """
    record = db.get(HistoryRecord, id)
    if record is None:
        return None
    db.delete(record)
    db.commit()
    return record


def get_owned_or_404(db: Session, user_key: str, id: str) -> HistoryRecord:
    """Load a history row and verify ownership.

    Raises:
        NotFoundError: If the row doesn't exist or belongs to another user key.
    """
    record = get_by_id(db, id)
    if record is None or record.user_key != user_key:
        raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "Not found")
    return record


def list_page(
    db: Session,
    user_key: str,
    limit: int = DEFAULT_LIMIT,
    cursor: str | None = None,
) -> HistoryPage:
    """List history rows owned by user_key, newest first.

    Args:
        db: Database session.
        user_key: Owner whose rows are listed.
        limit: Maximum number of results (clamped to 1-50).
        cursor: Opaque pagination cursor from a previous page.

    Raises:
        InvalidRequestError(E_INVALID_CURSOR): If cursor is malformed.
    """
    limit = clamp_limit(limit)

    query = select(HistoryRecord).where(HistoryRecord.user_key == user_key)
    if cursor:
        cursor_created_at, cursor_id = decode_history_cursor(cursor)
        query = query.where(
            or_(
                HistoryRecord.created_at < cursor_created_at,
                and_(
                    HistoryRecord.created_at == cursor_created_at,
                    HistoryRecord.id < cursor_id,
                ),
            )
        )

    query = query.order_by(HistoryRecord.created_at.desc(), HistoryRecord.id.desc()).limit(
        limit + 1  # Fetch one extra to check for more
    )
    rows = list(db.scalars(query).all())

    has_more = len(rows) > limit
    if has_more:
        rows = rows[:limit]

    next_cursor = None
    if has_more and rows:
        last = rows[-1]
        next_cursor = encode_history_cursor(last.created_at, last.id)

    return HistoryPage(items=rows, next_cursor=next_cursor)
