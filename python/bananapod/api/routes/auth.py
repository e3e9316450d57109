"""Login / logout routes.

POST /api/auth/check is public; every other route (including logout) passes
through AuthMiddleware first.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from bananapod.api.deps import get_session_manager
from bananapod.auth.middleware import Viewer, get_viewer
from bananapod.auth.sessions import SessionManager
from bananapod.errors import ApiErrorCode, InvalidRequestError, UnauthorizedError
from bananapod.logging import get_logger
from bananapod.responses import success_response
from bananapod.schemas.auth import AuthCheckRequest
from bananapod.schemas.common import OkResponse

logger = get_logger(__name__)

router = APIRouter()


@router.post("/api/auth/check")
async def auth_check(
    body: AuthCheckRequest,
    response: Response,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> dict:
    """Exchange an allowlisted user key for a session cookie.

    Sets bp_session (HttpOnly, Secure, SameSite=Lax, 30 days) and clears the
    legacy bp_token cookie.

    Errors:
        E_INVALID_REQUEST (400): userKey missing or blank.
        E_UNAUTHENTICATED (401): userKey not enabled.
    """
    user_key = (body.user_key or "").strip()
    if not user_key:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Missing userKey")

    if not await session_manager.authenticate(user_key):
        logger.info("auth_failure", reason="user_key_not_enabled")
        raise UnauthorizedError()

    _, directives = await session_manager.create_session(user_key)
    for directive in directives:
        directive.apply(response)

    return success_response(OkResponse().model_dump())


@router.post("/api/auth/logout")
async def logout(
    response: Response,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> dict:
    """Revoke the current session and clear its cookie."""
    directive = await session_manager.destroy_session(viewer.session_id)
    directive.apply(response)
    return success_response(OkResponse().model_dump())
