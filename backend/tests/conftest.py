"""Shared fixtures for the magic link test suite.

Uses an in-memory SQLite database (aiosqlite) shared through a StaticPool,
so the app, the background issuance pipeline, and the test itself all see
the same data without a PostgreSQL server.

Tests that inspect rows written by the app open a fresh session through
``session_factory`` instead of reusing one long-lived session, so they
never read stale identity-map state.
"""

import uuid
from collections.abc import AsyncGenerator, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlsplit

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.models import Base, MagicLinkToken, User
from app.services.magic_link_types import RequestContext

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
TEST_EMAIL = "a@x.com"
TEST_CONTEXT = RequestContext(
    ip_address="203.0.113.7", user_agent="pytest-agent", origin=None
)


def make_settings(**overrides) -> Settings:
    """Build an isolated Settings snapshot (no .env file).

    Args:
        **overrides: Field values replacing the test defaults.

    Returns:
        Settings instance.
    """
    values = {
        "auth_secret": SecretStr(TEST_AUTH_SECRET),
        "resend_api_key": SecretStr("re_test_key"),
        "public_url": "http://testserver",
        "allowed_origins": ["http://localhost:3000"],
        "magic_link_allowed_roles": [],
        "magic_link_disallowed_roles": [],
        "magic_link_max_requests_per_hour": 5,
        "magic_link_expiration_minutes": 15,
        "environment": "test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def token_from_url(url: str) -> str:
    """Extract the ``token`` query parameter from a verification URL."""
    return parse_qs(urlsplit(url).query)["token"][0]


@dataclass
class SentLink:
    """One email captured by RecordingNotifier."""

    to_email: str
    subject: str
    verification_url: str
    expiration_minutes: int

    @property
    def token(self) -> str:
        return token_from_url(self.verification_url)


class RecordingNotifier:
    """MagicLinkNotifier double that records sends, or fails on demand."""

    def __init__(self, error: Exception | None = None) -> None:
        self.sent: list[SentLink] = []
        self.error = error

    async def send_magic_link(
        self,
        *,
        to_email: str,
        subject: str,
        verification_url: str,
        expiration_minutes: int,
    ) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(
            SentLink(
                to_email=to_email,
                subject=subject,
                verification_url=verification_url,
                expiration_minutes=expiration_minutes,
            )
        )


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for service and repository tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_settings() -> Settings:
    """Default settings for tests."""
    return make_settings()


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Notifier double capturing sent links."""
    return RecordingNotifier()


# =============================================================================
# Data helpers
# =============================================================================


async def create_user(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    email: str = TEST_EMAIL,
    role: str | None = "editor",
    user_id: uuid.UUID | None = None,
    first_name: str | None = "Ada",
    last_name: str | None = "Lovelace",
) -> User:
    """Insert a directory user and commit."""
    async with session_factory() as session:
        user = User(
            id=user_id or uuid.uuid4(),
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        session.add(user)
        await session.commit()
        return user


async def set_user_role(
    session_factory: async_sessionmaker[AsyncSession], email: str, role: str | None
) -> None:
    """Change a user's role (simulates the identity backend)."""
    async with session_factory() as session:
        user = (
            await session.execute(select(User).where(User.email == email))
        ).scalar_one()
        user.role = role
        await session.commit()


async def insert_token(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    email: str = TEST_EMAIL,
    token: str | None = None,
    expires_at: datetime | None = None,
    created_at: datetime | None = None,
    used: bool = False,
) -> MagicLinkToken:
    """Insert a token row directly and commit."""
    now = datetime.now(UTC)
    async with session_factory() as session:
        row = MagicLinkToken(
            email=email,
            token=token or uuid.uuid4().hex + uuid.uuid4().hex,
            expires_at=expires_at or now + timedelta(minutes=15),
            ip_address=TEST_CONTEXT.ip_address,
            user_agent=TEST_CONTEXT.user_agent,
            used=used,
            created_at=created_at or now,
        )
        session.add(row)
        await session.commit()
        return row


async def fetch_tokens(
    session_factory: async_sessionmaker[AsyncSession], email: str = TEST_EMAIL
) -> list[MagicLinkToken]:
    """All ledger rows for an email, oldest first."""
    async with session_factory() as session:
        result = await session.execute(
            select(MagicLinkToken)
            .where(MagicLinkToken.email == email)
            .order_by(MagicLinkToken.created_at)
        )
        return list(result.scalars().all())


# =============================================================================
# HTTP client
# =============================================================================


@pytest.fixture
def disabled_ip_limiter() -> Iterator[None]:
    """Turn off the per-IP slowapi limiter for the duration of a test."""
    from app.core.rate_limiting import limiter

    original = limiter.enabled
    limiter.enabled = False
    yield
    limiter.enabled = original
    limiter.reset()


@pytest_asyncio.fixture
async def magic_link_client(
    session_factory,
    test_settings,
    notifier,
    disabled_ip_limiter,  # noqa: ARG001
) -> AsyncGenerator[AsyncClient, None]:
    """Client for the magic link endpoints backed by the test database."""
    from app.api.deps import get_notifier, get_settings
    from app.core.database import get_db, get_session_factory
    from app.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_notifier] = lambda: notifier

    # raise_app_exceptions=False lets the catch-all 500 handler be observed
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
