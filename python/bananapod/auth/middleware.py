"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: Global middleware for session cookie verification
- get_viewer: Dependency for accessing the authenticated viewer identity
"""

from dataclasses import dataclass

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from bananapod.auth.sessions import SESSION_COOKIE, SessionManager
from bananapod.errors import ApiErrorCode, UnauthorizedError
from bananapod.logging import get_logger, set_user_key
from bananapod.responses import error_response

logger = get_logger(__name__)

# Paths that don't require authentication
PUBLIC_PATHS = {"/api/auth/check", "/health", "/docs", "/redoc", "/openapi.json"}


@dataclass
class Viewer:
    """Authenticated viewer identity.

    Attributes:
        user_key: The allowlisted user key owning the session.
        session_id: The session token presented by the client.
    """

    user_key: str
    session_id: str


class AuthMiddleware(BaseHTTPMiddleware):
    """Session cookie authentication.

    Order of checks:
    1. Skip if public path
    2. Read the bp_session cookie
    3. Resolve it via SessionManager.require_auth (row, expiry, allowlist)
    4. Attach Viewer to request state

    Every failure produces the same 401 body so clients cannot tell an expired
    session from a revoked key.
    """

    async def dispatch(self, request: Request, call_next):
        """Process the request through auth checks."""
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        session_manager: SessionManager = request.app.state.session_manager
        session_id = request.cookies.get(SESSION_COOKIE)

        try:
            auth = await session_manager.require_auth(session_id)
        except Exception:
            logger.exception("auth_lookup_failed")
            return JSONResponse(
                status_code=500,
                content=error_response(ApiErrorCode.E_INTERNAL, "Internal server error"),
            )

        if auth is None:
            logger.info(
                "auth_failure",
                reason="missing_cookie" if not session_id else "invalid_session",
            )
            error = UnauthorizedError()
            return JSONResponse(
                status_code=error.status_code,
                content=error_response(error.code, error.message),
            )

        request.state.viewer = Viewer(user_key=auth.user_key, session_id=auth.session_id)
        set_user_key(auth.user_key)

        return await call_next(request)


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency to get the authenticated viewer.

    Raises:
        UnauthorizedError: If viewer is not set (middleware didn't run or path is public).
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise UnauthorizedError()
    return viewer
