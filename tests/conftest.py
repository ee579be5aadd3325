"""
tests/conftest.py -- Shared test fixtures for AccessGate unit and integration tests.

This module provides:
  - engine / user_store / access_store: a fresh sqlite:///:memory: database per test
  - make_user / make_card: seed helpers bound to those stores
  - api_client: TestClient with an admin session token for API integration tests
  - settings_env: clears the get_settings() cache around tests that change env vars

Design: API tests use named shared-memory SQLite URIs (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process. A plain sqlite3
connection is held open for the lifetime of the fixture so the shared database
is not dropped when the pool recycles its connections.

JWT_SECRET must be set before any project import so nothing that reads
settings fails with ConfigurationError during collection.
"""

from __future__ import annotations

import os
import sqlite3
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set JWT_SECRET before any api/auth/core import.
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")

import pytest
from fastapi.testclient import TestClient

from access.engine import AccessDecisionEngine
from access.models import Card
from access.store import AccessStore
from api.main import app
from auth.authenticator import Authenticator
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenCodec, hash_password
from core.config import get_settings
from store.database import init_schema, make_engine

TEST_SECRET = os.environ["JWT_SECRET"]
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "testpass123"

# bcrypt is slow on purpose; hash the shared fixture password once.
_ADMIN_HASH = hash_password(ADMIN_PASSWORD)


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Unit-test stores -- one private in-memory database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    eng = make_engine("sqlite:///:memory:")
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def access_store(engine) -> AccessStore:
    return AccessStore(engine)


@pytest.fixture
def make_user(user_store):
    """Return a factory that inserts a user and returns its id."""

    def _make(
        name: str = "Ada Lovelace",
        email: str = "ada@example.com",
        role: str = "student",
        status: str = "active",
        password_hash: str = _ADMIN_HASH,
    ) -> int:
        return user_store.create_user(
            User(name=name, email=email, password_hash=password_hash, role=role, status=status)
        )

    return _make


@pytest.fixture
def make_card(access_store):
    """Return a factory that registers a card and returns its id."""

    def _make(user_id: int, card_uid: str, is_active: bool = True) -> int:
        return access_store.add_card(Card(user_id=user_id, card_uid=card_uid, is_active=is_active))

    return _make


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def settings_env() -> Generator[None, None, None]:
    """Clear the cached Settings before and after a test that edits the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# API integration client -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, access_store: AccessStore, db_engine):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test components into app.state so TestClient routes see an
    isolated test database rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.db_engine = db_engine
        app.state.user_store = user_store
        app.state.access_store = access_store
        app.state.authenticator = Authenticator(user_store, TokenCodec(TEST_SECRET))
        app.state.access_engine = AccessDecisionEngine(access_store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, admin_user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory database. The admin
    user is created before the client starts and logged in through the real
    Authenticator to obtain the session token.
    """
    db_name = f"test_{request.module.__name__.rsplit('.', 1)[-1]}"
    keeper = sqlite3.connect(f"file:{db_name}?mode=memory&cache=shared", uri=True)
    db_engine = make_engine(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    init_schema(db_engine)
    user_store = UserStore(db_engine)
    access_store = AccessStore(db_engine)

    uid = user_store.create_user(User(name="Test Admin", email=ADMIN_EMAIL, password_hash=_ADMIN_HASH, role="admin"))
    token = Authenticator(user_store, TokenCodec(TEST_SECRET)).login(ADMIN_EMAIL, ADMIN_PASSWORD).token

    app.router.lifespan_context = _patch_lifespan(user_store, access_store, db_engine)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    db_engine.dispose()
    keeper.close()
