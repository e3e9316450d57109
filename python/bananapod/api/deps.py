"""FastAPI dependencies for route handlers.

Every shared resource is built by the app (lifespan or create_app arguments)
and lives on app.state; these dependencies only read it back.
"""

from fastapi import Request
from sqlalchemy.orm import Session, sessionmaker

from bananapod.auth.sessions import SessionManager
from bananapod.config import Settings
from bananapod.db.session import get_db
from bananapod.kv.video_ops import VideoOperationStoreBase
from bananapod.services.genai import GeminiMediaClient
from bananapod.storage.client import MediaStoreBase

__all__ = [
    "get_db",
    "get_session_factory",
    "get_settings_from_app",
    "get_genai_client",
    "get_media_store",
    "get_operation_store",
    "get_session_manager",
]


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Session factory for work that outlives the request-scoped session."""
    return request.app.state.session_factory


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


def get_genai_client(request: Request) -> GeminiMediaClient:
    """Get the shared Gemini media client from app state.

    The client wraps the shared httpx.AsyncClient created at startup.
    """
    return request.app.state.genai_client


def get_media_store(request: Request) -> MediaStoreBase:
    return request.app.state.media_store


def get_operation_store(request: Request) -> VideoOperationStoreBase:
    return request.app.state.operation_store


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager
