"""Pytest configuration and fixtures for BananaPod tests.

Test isolation strategy:
- Every test gets a fresh in-memory SQLite database (StaticPool, so the
  request thread and the threadpool see the same connection)
- Key-value and media stores are in-memory fakes
- The provider is replaced by ScriptedGenaiClient for route/orchestrator
  tests; the real GeminiMediaClient is tested against respx mocks
- TestClient talks https so Secure cookies round-trip
"""

import sys
from collections.abc import Generator
from pathlib import Path

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bananapod.app import add_request_id_middleware, create_app
from bananapod.config import Settings, clear_settings_cache
from bananapod.db.models import Base
from bananapod.db.session import create_session_factory
from bananapod.kv.credentials import InMemoryCredentialStore
from bananapod.kv.video_ops import InMemoryVideoOperationStore
from bananapod.storage.client import FakeStorageClient
from tests.helpers import ALICE, BOB, ScriptedGenaiClient


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Generator[None, None, None]:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        BANANAPOD_ENV="test",
        GEMINI_API_KEY="test-key",
        VIDEO_POLL_INTERVAL_S=10,
    )


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture
def media_store() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore({ALICE: "1", BOB: "1"})


@pytest.fixture
def operation_store() -> InMemoryVideoOperationStore:
    return InMemoryVideoOperationStore()


@pytest.fixture
def genai_client() -> ScriptedGenaiClient:
    return ScriptedGenaiClient()


@pytest.fixture
def app(
    settings,
    session_factory,
    genai_client,
    media_store,
    credential_store,
    operation_store,
):
    """App wired to in-memory backends, with the full middleware stack."""
    app = create_app(
        settings,
        session_factory=session_factory,
        genai_client=genai_client,
        media_store=media_store,
        credential_store=credential_store,
        operation_store=operation_store,
    )
    add_request_id_middleware(app, log_requests=False)
    return app


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Unauthenticated client (no session cookie yet)."""
    with TestClient(app, base_url="https://testserver") as client:
        yield client


@pytest.fixture
def alice_client(client: TestClient) -> TestClient:
    """Client logged in as ALICE."""
    response = client.post("/api/auth/check", json={"userKey": ALICE})
    assert response.status_code == 200, response.text
    return client


@pytest.fixture
def bob_client(app) -> Generator[TestClient, None, None]:
    """A second, independent client logged in as BOB."""
    with TestClient(app, base_url="https://testserver") as client:
        response = client.post("/api/auth/check", json={"userKey": BOB})
        assert response.status_code == 200, response.text
        yield client
