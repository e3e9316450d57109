"""SQLAlchemy ORM models for BananaPod.

Defines the structured metadata store using SQLAlchemy 2.x declarative patterns.
Column types are portable (PostgreSQL in deployment, SQLite in tests).
Timestamps are integer epoch milliseconds so cursor comparisons are exact.
"""

import time
from enum import Enum as PyEnum

from sqlalchemy import BigInteger, CheckConstraint, Index, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class HistoryKind(str, PyEnum):
    """Kinds of generated artifacts."""

    image = "image"
    video = "video"


# =============================================================================
# Models
# =============================================================================


class AuthSession(Base):
    """Login session bound to a user key.

    One row per issued token. A user key may hold any number of live sessions.
    Expired rows are deleted lazily when presented.
    """

    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_key: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_sessions_user", "user_key"),
        Index("idx_sessions_expires", "expires_at"),
    )


class HistoryRecord(Base):
    """Generated artifact metadata.

    The blob at blob_key is written before this row is inserted, and the row is
    deleted before the blob. Rows are never updated in place.
    """

    __tablename__ = "history"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_key: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    blob_key: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[str] = mapped_column(Text, nullable=False)
    etag: Mapped[str] = mapped_column(Text, nullable=False)  # quoted SHA-256 of the blob
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    extra_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("kind IN ('image', 'video')", name="ck_history_kind"),
        Index(
            "idx_history_user_created_id",
            "user_key",
            created_at.desc(),
            id.desc(),
        ),
    )
