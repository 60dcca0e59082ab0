"""
tests/conftest.py -- Shared test fixtures for GymCoach integration tests.

This module provides:
  - make_store(): an isolated named shared-memory account store
  - _patch_lifespan(): wires test objects into app.state, bypassing real startup
  - api_client: TestClient plus the store and issuer behind it
  - client_factory: short-lived TestClients with a chosen generation client

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment must be set before any api/auth/core import: settings are read
once at import time and SECRET_KEY is mandatory.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager, contextmanager

# CRITICAL: set before importing the app -- get_settings() raises without SECRET_KEY.
os.environ.setdefault("SECRET_KEY", "test-signing-key-0123456789abcdef0123456789abcdef")
os.environ.setdefault("DEBUG", "true")  # non-Secure cookies so TestClient sends them over http
os.environ.setdefault("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")
os.environ.setdefault("FRONTEND_ORIGIN", "http://localhost:5500")
os.environ.setdefault("GLOBAL_RATE_LIMIT", "10000 per 15 minutes")
os.environ.setdefault("API_RATE_LIMIT", "10000/minute")
os.environ.setdefault("LOGIN_RATE_LIMIT", "10000/minute")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.store import AccountStore
from auth.tokens import SessionIssuer

TEST_SECRET = os.environ["SECRET_KEY"]


def make_store(name: str | None = None) -> AccountStore:
    """Create an isolated named shared-memory SQLite store with minimum bcrypt cost."""
    name = name or uuid.uuid4().hex
    return AccountStore(
        db_url=f"sqlite:///file:test_accounts_{name}?mode=memory&cache=shared&uri=true",
        bcrypt_rounds=4,
    )


def _patch_lifespan(accounts: AccountStore, sessions: SessionIssuer, generator=None):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.accounts = accounts
        app.state.sessions = sessions
        app.state.generator = generator
        yield

    return test_lifespan


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = make_store()
    yield s
    s.close()


@pytest.fixture
def issuer() -> SessionIssuer:
    return SessionIssuer(TEST_SECRET)


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, AccountStore, SessionIssuer], None, None]:
    """Yield (client, store, issuer) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory store.
    """
    accounts = make_store()
    sessions = SessionIssuer(TEST_SECRET)
    app.router.lifespan_context = _patch_lifespan(accounts, sessions)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, accounts, sessions

    accounts.close()


@pytest.fixture
def client_factory():
    """Return a context manager that yields a TestClient wired to the given generator.

    Each client gets its own fresh store, so function-scoped tests never see
    each other's accounts.
    """

    @contextmanager
    def _make(generator=None):
        accounts = make_store()
        app.router.lifespan_context = _patch_lifespan(accounts, SessionIssuer(TEST_SECRET), generator)
        try:
            with TestClient(app) as client:
                yield client
        finally:
            accounts.close()

    return _make
