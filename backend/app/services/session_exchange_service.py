"""Session exchange: turn a verified identity into access + refresh credentials.

Stores a refresh session (hashed) and signs a short-lived access JWT.
Errors propagate to the caller, which decides how to report them.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import create_access_token, hash_refresh_token
from app.core.config import Settings
from app.models.user import User
from app.repositories.session_repository import SessionRepository
from app.services.magic_link_types import RequestContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCredentials:
    """Credentials issued for a verified identity.

    Attributes:
        access_token: Signed JWT.
        refresh_token: Opaque refresh secret (stored hashed).
        expires: Access token lifetime in milliseconds.
        refresh_max_age: Refresh token lifetime in seconds.
    """

    access_token: str
    refresh_token: str
    expires: int
    refresh_max_age: int


class SessionExchanger(Protocol):
    """Mints credentials for a verified user."""

    async def exchange(
        self, db: AsyncSession, user: User, context: RequestContext
    ) -> SessionCredentials: ...


class JWTSessionExchanger:
    """SessionExchanger that stores a refresh session and signs an access JWT.

    Args:
        settings: Configuration snapshot (secret, TTLs).
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def exchange(
        self, db: AsyncSession, user: User, context: RequestContext
    ) -> SessionCredentials:
        """Create a refresh session and access token for a user.

        Args:
            db: Async database session (caller commits).
            user: Verified user.
            context: Verifying request details bound to the session.

        Returns:
            SessionCredentials for the response.
        """
        refresh_ttl = timedelta(days=self._settings.refresh_token_ttl_days)
        access_ttl = timedelta(minutes=self._settings.access_token_ttl_minutes)

        refresh_token = secrets.token_hex(32)
        await SessionRepository.create(
            db,
            user_id=user.id,
            refresh_token_hash=hash_refresh_token(refresh_token),
            expires_at=datetime.now(UTC) + refresh_ttl,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            origin=context.origin,
        )

        access_token = create_access_token(
            user_id=str(user.id),
            email=user.email,
            role=user.role,
            settings=self._settings,
            expires_delta=access_ttl,
        )

        return SessionCredentials(
            access_token=access_token,
            refresh_token=refresh_token,
            expires=int(access_ttl.total_seconds() * 1000),
            refresh_max_age=int(refresh_ttl.total_seconds()),
        )
