"""
tests/conftest.py -- Shared test fixtures for the mobiHub backend.

This module provides:
  - settings / clock / transport: a fixed Settings instance, a FakeClock that
    tests move forward past TTLs, and a RecordingTransport that captures mail
  - engine / user_store / catalog / links / dispatcher: a per-test file-backed
    SQLite database wired the same way the lifespan wires production
  - accounts / teams / ownership: the workflows over those collaborators
  - api_client: TestClient over the real app with a patched lifespan

Design: api_client uses a named shared-memory SQLite URI (not plain :memory:)
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
Unit fixtures use a file under tmp_path so the concurrency tests exercise
real SQLite locking.

DEBUG and ALLOWED_HOSTS must be set before any project import: get_settings()
runs at import time in auth/tokens.py and api/main.py.
"""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set before any auth/core import so get_settings() can auto-generate
# SECRET_KEY in dev mode and TrustedHostMiddleware accepts the TestClient host.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.links import LinkTokenEngine
from auth.store import UserStore
from catalog.inspection import PseudoInspector
from catalog.storage import LocalBlobStorage
from catalog.store import CatalogStore
from catalog.uploads import UploadLifecycle
from core.config import Settings
from core.database import create_db_engine
from notify.dispatcher import NotificationDispatcher
from workflows.accounts import AccountWorkflows
from workflows.ownership import OwnershipWorkflows
from workflows.teams import TeamWorkflows

# Rate limits are exercised by slowapi's own tests; ours would trip them.
limiter.enabled = False

_TOKEN_RE = re.compile(r"token=([A-Za-z0-9_\-]+)")


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock for LinkTokenEngine. Starts at a fixed UTC instant."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingTransport:
    """MailTransport that records every message. Set fail=True to refuse delivery."""

    def __init__(self) -> None:
        self.sent: list[tuple[list[str], str, str]] = []
        self.fail = False

    def send(self, recipients: list[str], subject: str, html: str) -> bool:
        if self.fail:
            return False
        self.sent.append((list(recipients), subject, html))
        return True

    def last_token(self) -> str:
        """Return the raw link token from the most recent message."""
        _, _, html = self.sent[-1]
        match = _TOKEN_RE.search(html)
        assert match, "no link token in the last email"
        return match.group(1)


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=True,
        secret_key="t" * 48,
        frontend_base_url="http://frontend.test",
        mail_api_key="",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def engine(tmp_path):
    eng = create_db_engine(f"sqlite:///{tmp_path / 'mobihub_test.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def catalog(engine) -> CatalogStore:
    return CatalogStore(engine)


@pytest.fixture
def links(user_store, settings, clock) -> LinkTokenEngine:
    return LinkTokenEngine(user_store, settings, clock=clock)


@pytest.fixture
def dispatcher(transport) -> NotificationDispatcher:
    return NotificationDispatcher(transport)


@pytest.fixture
def accounts(user_store, links, dispatcher, settings) -> AccountWorkflows:
    return AccountWorkflows(user_store, links, dispatcher, settings)


@pytest.fixture
def teams(user_store, links, dispatcher, settings) -> TeamWorkflows:
    return TeamWorkflows(user_store, links, dispatcher, settings)


@pytest.fixture
def ownership(user_store, catalog, links, dispatcher, settings) -> OwnershipWorkflows:
    return OwnershipWorkflows(user_store, catalog, links, dispatcher, settings)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(state: dict):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created collaborators into app.state so TestClient routes see
    isolated test DBs and the recording transport.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        for name, value in state.items():
            setattr(app.state, name, value)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[tuple[TestClient, RecordingTransport], None, None]:
    """Yield (client, transport) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory database. Emails
    land in the returned RecordingTransport.
    """
    suite = tmp_path_factory.mktemp("api")
    api_settings = Settings(debug=True, secret_key="a" * 48, frontend_base_url="http://frontend.test")
    engine = create_db_engine(f"sqlite:///file:test_api_{suite.name}?mode=memory&cache=shared&uri=true")
    user_store = UserStore(engine)
    catalog = CatalogStore(engine)
    links = LinkTokenEngine(user_store, api_settings)
    transport = RecordingTransport()
    dispatcher = NotificationDispatcher(transport)
    state = {
        "user_store": user_store,
        "catalog": catalog,
        "links": links,
        "dispatcher": dispatcher,
        "uploads": UploadLifecycle(catalog, PseudoInspector()),
        "storage": LocalBlobStorage(suite / "blobs"),
        "accounts": AccountWorkflows(user_store, links, dispatcher, api_settings),
        "teams": TeamWorkflows(user_store, links, dispatcher, api_settings),
        "ownership": OwnershipWorkflows(user_store, catalog, links, dispatcher, api_settings),
    }

    app.router.lifespan_context = _patch_lifespan(state)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, transport

    user_store.close()
