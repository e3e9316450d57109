"""Session issuance, validation and revocation.

Sessions are opaque random tokens stored in the `sessions` table and carried
in the `bp_session` cookie. A session is valid only while:
- its row exists,
- now < expires_at (expired rows are deleted when presented), and
- the owning user key is still enabled in the credential store.

Revoking a user key therefore invalidates all of its sessions on their next
use, without touching the sessions table.
"""

import secrets
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Response
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from bananapod.db.models import AuthSession, epoch_ms
from bananapod.db.session import transaction
from bananapod.kv.credentials import CredentialStoreBase
from bananapod.logging import get_logger

logger = get_logger(__name__)

SESSION_COOKIE = "bp_session"
LEGACY_TOKEN_COOKIE = "bp_token"
DEFAULT_SESSION_TTL_S = 60 * 60 * 24 * 30  # 30 days


@dataclass(frozen=True)
class CookieDirective:
    """A Set-Cookie instruction for the transport layer.

    max_age of 0 clears the cookie.
    """

    name: str
    value: str
    max_age: int
    secure: bool = True

    def apply(self, response: Response) -> None:
        response.set_cookie(
            key=self.name,
            value=self.value,
            max_age=self.max_age,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )


@dataclass(frozen=True)
class AuthContext:
    """The authenticated principal for one request."""

    user_key: str
    session_id: str


class SessionManager:
    """Issues, validates and revokes login sessions.

    Database work is synchronous SQLAlchemy and is moved off the event loop;
    the credential store is async.
    """

    def __init__(
        self,
        credential_store: CredentialStoreBase,
        session_factory: sessionmaker[Session],
        *,
        ttl_s: int = DEFAULT_SESSION_TTL_S,
        cookie_secure: bool = True,
        clock: Callable[[], int] = epoch_ms,
    ):
        self._credentials = credential_store
        self._session_factory = session_factory
        self._ttl_s = ttl_s
        self._cookie_secure = cookie_secure
        self._clock = clock

    async def authenticate(self, user_key: str) -> bool:
        """Check a user key against the allowlist. Blank keys are rejected unseen."""
        user_key = user_key.strip()
        if not user_key:
            return False
        return await self._credentials.is_enabled(user_key)

    async def create_session(self, user_key: str) -> tuple[str, list[CookieDirective]]:
        """Persist a new session and return its id plus cookie directives.

        The directives set `bp_session` and clear the legacy `bp_token` cookie.
        """
        session_id = secrets.token_urlsafe(32)
        created_at = self._clock()
        expires_at = created_at + self._ttl_s * 1000

        def _insert() -> None:
            with self._session_factory() as db, transaction(db):
                db.add(
                    AuthSession(
                        session_id=session_id,
                        user_key=user_key,
                        created_at=created_at,
                        expires_at=expires_at,
                    )
                )

        await run_in_threadpool(_insert)
        logger.info("session_created", user_key=user_key)

        return session_id, [
            CookieDirective(SESSION_COOKIE, session_id, self._ttl_s, self._cookie_secure),
            CookieDirective(LEGACY_TOKEN_COOKIE, "", 0, self._cookie_secure),
        ]

    async def destroy_session(self, session_id: str | None) -> CookieDirective:
        """Delete a session (idempotent) and return a clearing cookie directive."""
        if session_id:
            await run_in_threadpool(self._delete_row, session_id)
            logger.info("session_destroyed")
        return CookieDirective(SESSION_COOKIE, "", 0, self._cookie_secure)

    async def require_auth(self, session_id: str | None) -> AuthContext | None:
        """Resolve a session token to its principal, or None if not authenticated."""
        if not session_id or not session_id.strip():
            return None

        def _load() -> AuthSession | None:
            with self._session_factory() as db:
                return db.scalar(select(AuthSession).where(AuthSession.session_id == session_id))

        row = await run_in_threadpool(_load)
        if row is None:
            return None

        if row.expires_at <= self._clock():
            await run_in_threadpool(self._delete_row, session_id)
            logger.info("session_expired", user_key=row.user_key)
            return None

        if not await self._credentials.is_enabled(row.user_key):
            logger.info("session_user_key_revoked", user_key=row.user_key)
            return None

        return AuthContext(user_key=row.user_key, session_id=session_id)

    def _delete_row(self, session_id: str) -> None:
        with self._session_factory() as db, transaction(db):
            db.execute(delete(AuthSession).where(AuthSession.session_id == session_id))
