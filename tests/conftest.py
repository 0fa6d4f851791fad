"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ["WEBSITE_ADMINS"] = "admin@example.com"

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from sealedlove import models  # noqa: F401
from sealedlove.config import settings
from sealedlove.database import get_session
from sealedlove.main import app
from sealedlove.models import User, utcnow
from sealedlove.services.auth import create_token
from sealedlove.services.cache import EphemeralStore, get_store
from sealedlove.services.email import (
    EmailAttachment,
    EmailBackend,
    EmailService,
    get_email_service,
)
from sealedlove.services.signin import SignInService


@dataclass
class SentEmail:
    to: str
    subject: str
    html: str
    text: str | None
    reply_to: str | None
    from_address: str | None
    attachments: list[EmailAttachment] | None


class RecordingEmailBackend(EmailBackend):
    """Keeps every message in memory. Set `succeed` to False to simulate outages."""

    def __init__(self) -> None:
        self.sent: list[SentEmail] = []
        self.succeed = True

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        *,
        reply_to: str | None = None,
        from_address: str | None = None,
        attachments: list[EmailAttachment] | None = None,
    ) -> bool:
        if not self.succeed:
            return False
        self.sent.append(
            SentEmail(to, subject, html, text, reply_to, from_address, attachments)
        )
        return True

    def subjects_for(self, to: str) -> list[str]:
        return [m.subject for m in self.sent if m.to == to]


@pytest.fixture
async def test_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        settings.database_url_test,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Database session on the per-test engine."""
    factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


@pytest.fixture
async def redis() -> AsyncGenerator[FakeAsyncRedis, None]:
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def store(redis: FakeAsyncRedis) -> EphemeralStore:
    return EphemeralStore(redis)


@pytest.fixture
def email_backend() -> RecordingEmailBackend:
    return RecordingEmailBackend()


@pytest.fixture
def email_service(email_backend: RecordingEmailBackend) -> EmailService:
    return EmailService(backend=email_backend)


@pytest.fixture
def signin(store: EphemeralStore, email_service: EmailService) -> SignInService:
    return SignInService(store, email_service)


@pytest.fixture
async def client(
    session: AsyncSession,
    store: EphemeralStore,
    email_service: EmailService,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_email_service] = lambda: email_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def user(session: AsyncSession) -> User:
    """Create a test user."""
    user = User(email="test@example.com", name="Test User", email_verified=utcnow())
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def admin_user(session: AsyncSession) -> User:
    """Create a user on the admin allow-list."""
    user = User(email="admin@example.com", name="Admin User", email_verified=utcnow())
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
def user_token(user: User) -> str:
    """Create a JWT token for the test user."""
    return create_token(user)


@pytest.fixture
def admin_token(admin_user: User) -> str:
    """Create a JWT token for the admin user."""
    return create_token(admin_user)


@pytest.fixture
def auth_headers(user_token: str) -> dict[str, str]:
    """Create authorization headers for the test user."""
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture
def admin_headers(admin_token: str) -> dict[str, str]:
    """Create authorization headers for the admin user."""
    return {"Authorization": f"Bearer {admin_token}"}


# Helper to make authenticated requests
class AuthenticatedClient:
    """Wrapper for AsyncClient with authentication."""

    def __init__(self, client: AsyncClient, headers: dict[str, str]):
        self.client = client
        self.headers = headers

    async def get(self, url: str, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", {}).update(self.headers)
        return await self.client.get(url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", {}).update(self.headers)
        return await self.client.post(url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", {}).update(self.headers)
        return await self.client.patch(url, **kwargs)


@pytest.fixture
def authenticated_client(client: AsyncClient, auth_headers: dict[str, str]) -> AuthenticatedClient:
    """Create an authenticated test client."""
    return AuthenticatedClient(client, auth_headers)


@pytest.fixture
def admin_client(client: AsyncClient, admin_headers: dict[str, str]) -> AuthenticatedClient:
    """Create an authenticated admin test client."""
    return AuthenticatedClient(client, admin_headers)
