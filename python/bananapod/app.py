"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, auth middleware, request-id middleware, and routes.

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- This ensures all requests (including auth failures) get X-Request-ID

Actual execution order per request:
1. RequestIDMiddleware (sets request_id, starts timer)
2. AuthMiddleware (resolves bp_session cookie, sets viewer)
3. Route handler
4. AuthMiddleware (returns response)
5. RequestIDMiddleware (logs, sets response header)

Resource Lifecycle:
- Shared state lives on app.state; nothing is a module-level singleton
- Resources passed to create_app() are used as-is (tests inject fakes)
- Anything not injected is built in the lifespan from settings:
  - httpx.AsyncClient shared by the Gemini client and Supabase Storage
  - redis.asyncio client for the allowlist and video handles (if REDIS_URL)
  - in-memory stores when a backend is not configured (local/test only)
- Clients created by the lifespan are closed at shutdown
"""

from contextlib import asynccontextmanager

import httpx
import redis.asyncio as redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from bananapod.api.routes import create_api_router
from bananapod.auth.middleware import AuthMiddleware
from bananapod.auth.sessions import SessionManager
from bananapod.config import Settings, get_settings
from bananapod.db.engine import create_db_engine
from bananapod.db.session import create_session_factory
from bananapod.errors import ApiError, ApiErrorCode
from bananapod.kv.credentials import (
    CredentialStoreBase,
    InMemoryCredentialStore,
    RedisCredentialStore,
)
from bananapod.kv.video_ops import (
    InMemoryVideoOperationStore,
    RedisVideoOperationStore,
    VideoOperationStoreBase,
)
from bananapod.logging import configure_logging, get_logger
from bananapod.middleware.request_id import RequestIDMiddleware
from bananapod.responses import (
    api_error_handler,
    error_response,
    http_exception_handler,
    storage_error_handler,
    unhandled_exception_handler,
    upstream_error_handler,
)
from bananapod.services.genai import GeminiMediaClient, UpstreamError
from bananapod.storage.client import (
    FakeStorageClient,
    MediaStoreBase,
    StorageError,
    SupabaseStorageClient,
)

# Configure structured logging at import time
configure_logging()

logger = get_logger(__name__)

# Keyed by the first element of a validation error's loc.
VALIDATION_MESSAGES = {
    "query": "Invalid query parameter",
    "path": "Invalid path parameter",
    "header": "Invalid header",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build whatever create_app() was not given, and close it on shutdown."""
    settings: Settings = app.state.settings

    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(float(settings.upstream_timeout_s), connect=10.0),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )
    app.state.httpx_client = http_client

    redis_client = None
    needs_kv = app.state.credential_store is None or app.state.operation_store is None
    if needs_kv and settings.redis_url:
        redis_client = redis.Redis.from_url(settings.redis_url, socket_timeout=5)
        logger.info("redis_client_initialized")

    if app.state.genai_client is None:
        if not settings.gemini_api_key:
            logger.warning("gemini_api_key_missing")
        app.state.genai_client = GeminiMediaClient(
            http_client,
            settings.gemini_api_key or "",
            base_url=settings.gemini_base_url,
            image_model=settings.gemini_image_model,
            video_model=settings.gemini_video_model,
            timeout_s=settings.upstream_timeout_s,
        )

    if app.state.media_store is None:
        if settings.uses_storage_backend:
            app.state.media_store = SupabaseStorageClient(
                http_client,
                settings.supabase_url,  # type: ignore[arg-type]
                settings.supabase_service_key,  # type: ignore[arg-type]
                bucket=settings.storage_bucket,
            )
        else:
            logger.warning("media_store_in_memory")
            app.state.media_store = FakeStorageClient()

    if app.state.credential_store is None:
        if redis_client is not None:
            app.state.credential_store = RedisCredentialStore(redis_client)
        else:
            logger.warning("credential_store_in_memory")
            app.state.credential_store = InMemoryCredentialStore()

    if app.state.operation_store is None:
        if redis_client is not None:
            app.state.operation_store = RedisVideoOperationStore(redis_client)
        else:
            logger.warning("operation_store_in_memory")
            app.state.operation_store = InMemoryVideoOperationStore()

    app.state.session_manager = SessionManager(
        app.state.credential_store,
        app.state.session_factory,
        ttl_s=settings.session_ttl_s,
        cookie_secure=settings.session_cookie_secure,
    )

    yield

    await http_client.aclose()
    if redis_client is not None:
        await redis_client.aclose()
    logger.info("app_resources_closed")


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    genai_client: GeminiMediaClient | None = None,
    media_store: MediaStoreBase | None = None,
    credential_store: CredentialStoreBase | None = None,
    operation_store: VideoOperationStoreBase | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings (defaults to get_settings()).
        session_factory: SQLAlchemy session factory (defaults to one bound
            to DATABASE_URL).
        genai_client, media_store, credential_store, operation_store:
            Pre-built backends. Any left as None is built in the lifespan.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="BananaPod API",
        description="Authenticated image/video generation gateway with per-user history",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory or create_session_factory(
        create_db_engine(settings.database_url)
    )
    app.state.genai_client = genai_client
    app.state.media_store = media_store
    app.state.credential_store = credential_store
    app.state.operation_store = operation_store

    # Register exception handlers
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(UpstreamError, upstream_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors (including malformed JSON)."""
        errors = exc.errors()
        if any(error.get("type") == "json_invalid" for error in errors):
            message = "Malformed JSON body"
        else:
            source = errors[0]["loc"][0] if errors and errors[0].get("loc") else "body"
            message = VALIDATION_MESSAGES.get(source, "Invalid request body")
        return JSONResponse(
            status_code=400,
            content=error_response(ApiErrorCode.E_INVALID_REQUEST, message),
        )

    app.include_router(create_api_router())

    # Add auth middleware (runs on all requests except public paths)
    app.add_middleware(AuthMiddleware)
    logger.info("auth_middleware_enabled", env=settings.bananapod_env.value)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER all other middleware is added, so it runs FIRST.
    This ensures every response includes X-Request-ID, including auth failures.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
