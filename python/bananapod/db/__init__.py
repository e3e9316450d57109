"""Database layer: engine, sessions and the ORM models for history and login sessions."""

from bananapod.db.engine import create_db_engine
from bananapod.db.models import AuthSession, Base, HistoryKind, HistoryRecord, epoch_ms
from bananapod.db.session import create_session_factory, get_db, transaction

__all__ = [
    "create_db_engine",
    "create_session_factory",
    "get_db",
    "transaction",
    "Base",
    "epoch_ms",
    "HistoryKind",
    "AuthSession",
    "HistoryRecord",
]
