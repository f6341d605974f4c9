"""Repository for MagicLinkToken ledger operations.

Append-mostly: rows are inserted, then only ``used`` and the delivery
columns are ever updated. There is deliberately no delete method;
retention is handled outside this service.
"""

import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.magic_link_token import MagicLinkToken

# Audit rows can never be redeemed; the short expiry just keeps them tidy
AUDIT_ROW_TTL = timedelta(seconds=60)

# email_error column width
MAX_EMAIL_ERROR_LENGTH = 255

SUPERSEDED_REASON = "Superseded by new token"


class MagicLinkTokenRepository:
    """Stateless repository for magic_link_tokens table operations.

    All methods are static with no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        token: str,
        expires_at: datetime,
        ip_address: str,
        user_agent: str | None,
        used: bool = False,
        created_at: datetime | None = None,
        email_sent: bool | None = None,
        email_error: str | None = None,
    ) -> MagicLinkToken:
        """Insert a token row.

        Args:
            db: Async database session.
            email: Target identity.
            token: Bearer secret.
            expires_at: Absolute expiry.
            ip_address: Caller IP at issuance.
            user_agent: Caller user agent at issuance.
            used: Insert as already used (audit rows).
            created_at: Issuance time. Defaults to now.
            email_sent: Delivery state; None means pending.
            email_error: Delivery failure or audit reason.

        Returns:
            Created MagicLinkToken.
        """
        row = MagicLinkToken(
            email=email,
            token=token,
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
            used=used,
            created_at=created_at or datetime.now(UTC),
            email_sent=email_sent,
            email_error=email_error,
        )
        db.add(row)
        await db.flush()
        return row

    @staticmethod
    async def record_audit(
        db: AsyncSession,
        *,
        email: str,
        reason: str,
        ip_address: str,
        user_agent: str | None,
        now: datetime | None = None,
    ) -> MagicLinkToken:
        """Record a rejected request as a synthetic, already-used row.

        The row counts towards the per-email rate window and documents
        why no link was sent. Its random token can never be redeemed.

        Args:
            db: Async database session.
            email: Requested email (may not exist in the directory).
            reason: Why the request was rejected.
            ip_address: Caller IP.
            user_agent: Caller user agent.
            now: Current time. Defaults to now.

        Returns:
            Created audit MagicLinkToken.
        """
        now = now or datetime.now(UTC)
        return await MagicLinkTokenRepository.create(
            db,
            email=email,
            token=secrets.token_hex(32),
            expires_at=now + AUDIT_ROW_TTL,
            ip_address=ip_address,
            user_agent=user_agent,
            used=True,
            created_at=now,
            email_sent=False,
            email_error=reason[:MAX_EMAIL_ERROR_LENGTH],
        )

    @staticmethod
    async def get_by_token(db: AsyncSession, token: str) -> MagicLinkToken | None:
        """Look up a row by exact token value.

        Args:
            db: Async database session.
            token: Bearer secret as presented.

        Returns:
            MagicLinkToken if found, None otherwise.
        """
        stmt = select(MagicLinkToken).where(MagicLinkToken.token == token)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count_since(db: AsyncSession, email: str, since: datetime) -> int:
        """Count rows for an email created after ``since``.

        Every row counts (issued, superseded and audit rows alike), so
        rejected requests still consume the per-email budget.

        Args:
            db: Async database session.
            email: Identity to count.
            since: Window start (exclusive).

        Returns:
            Number of rows in the window.
        """
        stmt = select(func.count(MagicLinkToken.id)).where(
            MagicLinkToken.email == email,
            MagicLinkToken.created_at > since,
        )
        result = await db.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    async def supersede_live(
        db: AsyncSession,
        email: str,
        *,
        now: datetime | None = None,
    ) -> int:
        """Mark every live token for an email as used.

        Exhaustive: all unused, unexpired rows are flipped, not only the
        most recent one.

        Args:
            db: Async database session.
            email: Identity whose tokens are superseded.
            now: Current time. Defaults to now.

        Returns:
            Number of rows superseded.
        """
        now = now or datetime.now(UTC)
        stmt = (
            update(MagicLinkToken)
            .where(
                MagicLinkToken.email == email,
                MagicLinkToken.used.is_(False),
                MagicLinkToken.expires_at > now,
            )
            .values(used=True, email_error=SUPERSEDED_REASON)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def mark_email_sent(db: AsyncSession, token: str) -> None:
        """Record successful delivery for a token.

        Args:
            db: Async database session.
            token: Bearer secret of the delivered link.
        """
        stmt = (
            update(MagicLinkToken)
            .where(MagicLinkToken.token == token)
            .values(email_sent=True, email_error=None)
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)

    @staticmethod
    async def mark_email_failed(db: AsyncSession, token: str, error: str) -> None:
        """Record failed delivery for a token.

        Args:
            db: Async database session.
            token: Bearer secret of the undelivered link.
            error: Failure reason, truncated to the column width.
        """
        stmt = (
            update(MagicLinkToken)
            .where(MagicLinkToken.token == token)
            .values(email_sent=False, email_error=error[:MAX_EMAIL_ERROR_LENGTH])
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)
