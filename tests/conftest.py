"""
tests/conftest.py -- Shared test fixtures for supplier gate tests.

This module provides:
  - make_identity_store(): isolated named shared-memory SQLite store
  - RecordingTransport: in-memory mail transport that can simulate outages
  - _patch_lifespan(): wires test stores and a real dispatcher into app.state
  - api: module-scoped ApiHarness (TestClient + helpers to mint users/sessions)
  - identities / suppliers / lifecycle: function-scoped domain objects for
    tests that do not need HTTP

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any project import: get_settings()
is cached at first call and several modules read it at import time.
"""

from __future__ import annotations

import itertools
import os
import tempfile
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

# CRITICAL: before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("BASE_URL", "http://testserver")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("NOTIFY_BACKOFF_SECONDS", "0")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="suppliergate-test-"))

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.models import Identity, Role
from auth.store import IdentityStore
from auth.tokens import SESSION_COOKIE, create_session_token, hash_password
from notifications.dispatcher import NotificationDispatcher
from notifications.mailer import MailDeliveryError
from suppliers.lifecycle import SupplierLifecycle
from suppliers.models import DocumentUpload
from suppliers.store import SupplierStore

TEST_PASSWORD = "correct-horse-battery"
# bcrypt is slow on purpose; hash once for every fixture user
_PASSWORD_HASH = hash_password(TEST_PASSWORD)

PDF_BYTES = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\ntrailer << /Root 1 0 R >>\n%%EOF\n"

_email_seq = itertools.count(1)


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}{next(_email_seq)}-{uuid.uuid4().hex[:6]}@example.com"


def make_identity_store(name: str | None = None) -> IdentityStore:
    """Create an isolated named shared-memory SQLite store."""
    name = name or uuid.uuid4().hex
    return IdentityStore(f"sqlite:///file:test_{name}?mode=memory&cache=shared&uri=true")


def add_identity(store: IdentityStore, role: Role = Role.REGULAR, email: str | None = None) -> Identity:
    identity = Identity(email=email or unique_email(role.value.lower()), hashed_password=_PASSWORD_HASH, role=role)
    identity.id = store.create_identity(identity)
    return identity


def cookie_header(token: str) -> dict[str, str]:
    """Request headers carrying a session cookie.

    An explicit Cookie header takes precedence over the client's cookie jar.
    """
    return {"Cookie": f"{SESSION_COOKIE}={token}"}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class RecordingTransport:
    """Mail transport that records messages; the first `failures` sends raise."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls = 0
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to: str, subject: str, html: str) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise MailDeliveryError("simulated outage")
        self.sent.append((to, subject, html))

    def close(self) -> None:
        pass


@dataclass
class RecordingDispatcher:
    """Stands in for NotificationDispatcher where no event loop is running."""

    jobs: list[tuple[str, dict]] = field(default_factory=list)

    def enqueue(self, kind: str, payload: dict) -> bool:
        self.jobs.append((kind, dict(payload)))
        return True


# ---------------------------------------------------------------------------
# Domain fixtures (no HTTP)
# ---------------------------------------------------------------------------


@pytest.fixture
def identities() -> Generator[IdentityStore, None, None]:
    store = make_identity_store()
    yield store
    store.close()


@pytest.fixture
def suppliers(identities: IdentityStore) -> SupplierStore:
    return SupplierStore(identities)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def lifecycle(
    identities: IdentityStore, suppliers: SupplierStore, dispatcher: RecordingDispatcher
) -> SupplierLifecycle:
    return SupplierLifecycle(identities, suppliers, dispatcher)


@pytest.fixture
def make_uploads(tmp_path: Path):
    """Factory: write n small PDFs under tmp_path and return them as DocumentUploads."""

    def _make(n: int = 1) -> list[DocumentUpload]:
        uploads = []
        for _ in range(n):
            path = tmp_path / f"{uuid.uuid4().hex}.pdf"
            path.write_bytes(PDF_BYTES)
            uploads.append(
                DocumentUpload(file_name=f"license-{path.stem[:6]}.pdf", file_path=str(path), mime_type="application/pdf")
            )
        return uploads

    return _make


# ---------------------------------------------------------------------------
# API harness
# ---------------------------------------------------------------------------


def _patch_lifespan(identities: IdentityStore, transport: RecordingTransport):
    """Return an async context manager that replaces the real lifespan.

    The dispatcher is real: it runs on the TestClient portal's event loop, so
    route handlers enqueue exactly as they do in production.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        dispatcher = NotificationDispatcher(transport, max_attempts=2, backoff_seconds=0)
        dispatcher.start()
        app.state.mailer = transport
        wire_services(app, identities, dispatcher)
        yield
        await dispatcher.stop()

    return test_lifespan


@dataclass
class ApiHarness:
    client: TestClient
    identities: IdentityStore
    transport: RecordingTransport

    def user(self, role: Role = Role.REGULAR) -> tuple[Identity, dict[str, str]]:
        """Create an identity and return it with session cookie headers."""
        identity = add_identity(self.identities, role)
        return identity, cookie_header(create_session_token(identity))

    def drain(self) -> None:
        """Block until the notification worker has processed every queued job."""
        self.client.portal.call(app.state.dispatcher.join)

    def apply(self, headers: dict[str, str], count: int = 1):
        files = [("documents", (f"doc{i}.pdf", PDF_BYTES, "application/pdf")) for i in range(count)]
        return self.client.post("/api/v1/suppliers/apply", files=files, headers=headers)


@pytest.fixture(scope="module")
def api() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness backed by a per-module in-memory database."""
    store = make_identity_store()
    transport = RecordingTransport()
    app.router.lifespan_context = _patch_lifespan(store, transport)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, identities=store, transport=transport)

    store.close()


@pytest.fixture(autouse=True)
def _fresh_cookie_jar(request) -> None:
    """Start every API test with an empty cookie jar."""
    if "api" in request.fixturenames:
        request.getfixturevalue("api").client.cookies.clear()
