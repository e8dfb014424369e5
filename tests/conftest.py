"""
tests/conftest.py -- Shared test fixtures for the staff auth service.

This module provides:
  - FakeMail: records recovery mails instead of talking to SMTP
  - store / service: an isolated in-memory IdentityStore and IdentityService
  - make_identity: registers an identity with chosen functions/sector
  - api_client: TestClient over the real app with a patched lifespan

Design: API tests use named shared-memory SQLite URIs (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread.

DEBUG must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY and ENCRYPTION_SECRET_KEY instead of raising.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.activity import ActivityTracker
from auth.models import Function, Sector
from auth.service import IdentityService
from auth.store import IdentityStore

STRONG_PASSWORD = "Str0ng!pass"


class FakeMail:
    """MailDispatcher double that keeps every message in memory."""

    def __init__(self, enabled: bool = True, fail: bool = False) -> None:
        self.enabled = enabled
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    def send_password_recovery(self, email: str, reset_link: str) -> None:
        if self.fail:
            raise OSError("smtp down")
        self.sent.append((email, reset_link))


def token_from_link(link: str) -> str:
    return link.split("token=", 1)[1]


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[IdentityStore, None, None]:
    s = IdentityStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def mail() -> FakeMail:
    return FakeMail()


@pytest.fixture
def service(store: IdentityStore, mail: FakeMail) -> IdentityService:
    return IdentityService(store, mail, frontend_url="https://app.example.com/")


@pytest.fixture
def make_identity(service: IdentityService):
    """Factory: register a credential identity and return it."""

    def _make(
        email: str | None = None,
        functions: list[Function] | None = None,
        sector: Sector = Sector.CUIDADO_DE_ALUNOS,
        password: str = STRONG_PASSWORD,
    ):
        email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
        result = service.register(
            "Test",
            "User",
            email,
            password,
            phone="(11) 91234-5678",
            sector=sector,
            functions=functions,
        )
        return result.identity

    return _make


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: IdentityService, tracker: ActivityTracker):
    """Return a lifespan that wires test doubles into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.identity_service = service
        app.state.activity = tracker
        app.state.oauth = MagicMock()
        yield
        tracker.shutdown()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, IdentityService, FakeMail], None, None]:
    """Yield (client, service, mail) bound to an isolated shared-memory database.

    The rate limiter is disabled so many login calls in one module do not
    trip the per-IP limit.
    """
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = IdentityStore(db_url=db_url)
    fake_mail = FakeMail()
    service = IdentityService(store, fake_mail, frontend_url="https://app.example.com")
    tracker = ActivityTracker(timeout_seconds=600)

    app.router.lifespan_context = _patch_lifespan(service, tracker)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, service, fake_mail

    limiter.enabled = True
    store.close()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
