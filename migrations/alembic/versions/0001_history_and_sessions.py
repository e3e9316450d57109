"""Initial schema: history ledger and login sessions

Revision ID: 0001
Revises:
Create Date: 2026-10-18

- history: one row per generated artifact; blob lives in the media store
  under blob_key. Listing order is (created_at DESC, id DESC), served by
  idx_history_user_created_id.
- sessions: one row per issued bp_session token. Expired rows are removed
  lazily when presented.
- Timestamps are epoch milliseconds (BIGINT).
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "history",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("user_key", sa.Text(), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("blob_key", sa.Text(), nullable=False),
        sa.Column("mime_type", sa.Text(), nullable=False),
        sa.Column("etag", sa.Text(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("extra_json", sa.Text(), nullable=True),
        sa.CheckConstraint("kind IN ('image', 'video')", name="ck_history_kind"),
    )
    op.create_index(
        "idx_history_user_created_id",
        "history",
        ["user_key", sa.text("created_at DESC"), sa.text("id DESC")],
    )

    op.create_table(
        "sessions",
        sa.Column("session_id", sa.Text(), primary_key=True),
        sa.Column("user_key", sa.Text(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("expires_at", sa.BigInteger(), nullable=False),
    )
    op.create_index("idx_sessions_user", "sessions", ["user_key"])
    op.create_index("idx_sessions_expires", "sessions", ["expires_at"])


def downgrade() -> None:
    op.drop_index("idx_sessions_expires", table_name="sessions")
    op.drop_index("idx_sessions_user", table_name="sessions")
    op.drop_table("sessions")
    op.drop_index("idx_history_user_created_id", table_name="history")
    op.drop_table("history")
