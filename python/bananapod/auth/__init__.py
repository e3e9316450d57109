"""Authentication module.

This module provides:
- SessionManager: session issuance, validation and revocation
- Auth middleware for FastAPI
- Request state with viewer identity
"""

from bananapod.auth.middleware import AuthMiddleware, Viewer, get_viewer
from bananapod.auth.sessions import (
    SESSION_COOKIE,
    AuthContext,
    CookieDirective,
    SessionManager,
)

__all__ = [
    "AuthMiddleware",
    "Viewer",
    "get_viewer",
    "SESSION_COOKIE",
    "AuthContext",
    "CookieDirective",
    "SessionManager",
]
