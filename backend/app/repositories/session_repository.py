"""Repository for refresh sessions minted on magic link verification."""

import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.session import Session


class SessionRepository:
    """Stateless repository for Session table operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        refresh_token_hash: str,
        expires_at: datetime,
        ip_address: str | None,
        user_agent: str | None,
        origin: str | None,
    ) -> Session:
        """Store a refresh session.

        Args:
            db: Async database session.
            user_id: Owner of the session.
            refresh_token_hash: SHA-256 hex digest of the refresh token.
            expires_at: Refresh token expiry.
            ip_address: Caller IP.
            user_agent: Caller user agent.
            origin: Origin header of the verifying request.

        Returns:
            Created Session.
        """
        session = Session(
            user_id=user_id,
            refresh_token_hash=refresh_token_hash,
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
            origin=origin,
        )
        db.add(session)
        await db.flush()
        return session
