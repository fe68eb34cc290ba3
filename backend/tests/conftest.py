import sys
from pathlib import Path

# Add the backend root directory to Python path first
backend_root = Path(__file__).parent.parent
sys.path.insert(0, str(backend_root))

"""
Pytest configuration and fixtures for identity and session tests.
"""

import re
from typing import List, Optional
from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

import db.models  # noqa: F401
from api.deps import get_email_sender, get_oauth_transport
from core.errors import ProviderError
from db.base import Base
from db.session import get_session, make_session_factory
from main import app
from services.email.resend import EmailResponse

TOKEN_IN_LINK = re.compile(r"token=([A-Za-z0-9_-]+)")


class FakeEmailSender:
    """Records outgoing mail instead of delivering it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[dict] = []

    async def send(self, to: str, subject: str, html_body: str) -> EmailResponse:
        if self.fail:
            raise ProviderError("Failed to send email: connection refused")
        self.sent.append({"to": to, "subject": subject, "html": html_body})
        return EmailResponse(
            id=f"email-{len(self.sent)}",
            sender="auth@example.com",
            to=to,
            subject=subject,
            created_at="2026-01-01T00:00:00+00:00",
        )

    def last_token(self) -> str:
        match = TOKEN_IN_LINK.search(self.sent[-1]["html"])
        assert match, "no token link in the last email"
        return match.group(1)


class FakeOAuthProvider:
    """Answers token and userinfo requests the way an OAuth provider would."""

    def __init__(self, userinfo: dict, token_status: int = 200, userinfo_status: int = 200):
        self.userinfo = userinfo
        self.token_status = token_status
        self.token_body = {"access_token": "provider-access-token", "token_type": "bearer"}
        self.userinfo_status = userinfo_status
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            return httpx.Response(self.token_status, json=self.token_body)
        return httpx.Response(self.userinfo_status, json=self.userinfo)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def token_request_form(self) -> Optional[dict]:
        for request in self.requests:
            if request.method == "POST":
                return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        return None


GITHUB_USER = {
    "id": 583231,
    "login": "octocat",
    "name": "The Octocat",
    "email": "octocat@github.com",
    "avatar_url": "https://avatars.githubusercontent.com/u/583231?v=4",
}


@pytest.fixture
def github_configured(monkeypatch):
    """Provide GitHub OAuth credentials for the duration of a test."""
    monkeypatch.setenv("GITHUB_CLIENT_ID", "github-client-id")
    monkeypatch.setenv("GITHUB_CLIENT_SECRET", "github-client-secret")
    for name in ("AUTH_URL", "TOKEN_URL", "USERINFO_URL"):
        monkeypatch.delenv(f"GITHUB_{name}", raising=False)


@pytest.fixture
def oauth_provider_factory():
    return FakeOAuthProvider


@pytest.fixture
def github_provider():
    return FakeOAuthProvider(dict(GITHUB_USER))


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with the identity schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    async with make_session_factory(engine)() as session:
        yield session


@pytest.fixture
def client(tmp_path, email_sender, github_provider):
    """TestClient backed by a throwaway SQLite file.

    A file database with NullPool gives every request a fresh connection, so
    the client's event loop never reuses a connection opened elsewhere.
    """
    db_path = tmp_path / "identity.db"
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    factory = make_session_factory(
        create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    )

    async def _override_session():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    app.dependency_overrides[get_oauth_transport] = lambda: github_provider.transport
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
