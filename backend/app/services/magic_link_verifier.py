"""Magic link verification state machine.

Checks run in a fixed order and the first failure wins:
missing token -> not found -> expired -> used -> user gone -> role
ineligible. Each failure carries a precise reason for logs; the API
layer collapses them into one external message.

A successful verification does NOT mark the token used. Mail scanners
and link previewers often follow a link before the person does, so the
token stays redeemable until it expires or a newer link supersedes it.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.repositories.magic_link_token_repository import MagicLinkTokenRepository
from app.repositories.user_repository import UserRepository
from app.services.eligibility_gate import RoleEligibilityGate
from app.services.magic_link_types import RequestContext
from app.services.session_exchange_service import (
    SessionCredentials,
    SessionExchanger,
)

logger = logging.getLogger(__name__)

# Width of the token column; anything longer cannot match a ledger row
MAX_TOKEN_LENGTH = 255


class VerificationFailure(enum.Enum):
    """Internal reason a verification was rejected."""

    MISSING_TOKEN = "missing_token"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"
    USER_NOT_FOUND = "user_not_found"
    ROLE_INELIGIBLE = "role_ineligible"
    SESSION_EXCHANGE_FAILED = "session_exchange_failed"


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a verification attempt.

    Attributes:
        user: Verified user on success.
        credentials: Minted credentials on success.
        failure: Rejection reason, None on success.
    """

    user: User | None = None
    credentials: SessionCredentials | None = None
    failure: VerificationFailure | None = None

    @property
    def ok(self) -> bool:
        """Whether the token was exchanged for credentials."""
        return self.failure is None

    @classmethod
    def rejected(cls, failure: VerificationFailure) -> "VerificationResult":
        return cls(failure=failure)


def _as_utc(value: datetime) -> datetime:
    # Some drivers hand back naive timestamps; they are stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class MagicLinkVerifier:
    """Validates presented tokens and exchanges them for a session.

    Args:
        gate: Role eligibility policy, re-evaluated at click time.
        exchanger: Mints credentials for the verified user.
    """

    def __init__(
        self,
        gate: RoleEligibilityGate,
        exchanger: SessionExchanger,
    ) -> None:
        self._gate = gate
        self._exchanger = exchanger

    async def verify(
        self,
        db: AsyncSession,
        token: str | None,
        context: RequestContext,
        *,
        now: datetime | None = None,
    ) -> VerificationResult:
        """Verify a token and, if valid, exchange it for credentials.

        Store errors during lookup propagate; only the session exchange
        is converted into a failure result, after rolling back its writes.

        Args:
            db: Async database session.
            token: Token as presented (may be None or empty).
            context: Verifying request details.
            now: Current time. Defaults to now.

        Returns:
            VerificationResult with credentials or a failure reason.
        """
        if not token:
            logger.debug("Magic link verification without token")
            return VerificationResult.rejected(VerificationFailure.MISSING_TOKEN)

        if len(token) > MAX_TOKEN_LENGTH:
            logger.debug("Magic link token longer than any issued token")
            return VerificationResult.rejected(VerificationFailure.NOT_FOUND)

        row = await MagicLinkTokenRepository.get_by_token(db, token)
        if row is None:
            logger.debug("Magic link token not found")
            return VerificationResult.rejected(VerificationFailure.NOT_FOUND)

        now = now or datetime.now(UTC)
        if _as_utc(row.expires_at) < now:
            logger.debug("Magic link token expired at %s", row.expires_at)
            return VerificationResult.rejected(VerificationFailure.EXPIRED)

        if row.used:
            logger.debug("Magic link token already used or superseded")
            return VerificationResult.rejected(VerificationFailure.ALREADY_USED)

        user = await UserRepository.get_by_email(db, row.email)
        if user is None:
            logger.debug("User for magic link token no longer exists")
            return VerificationResult.rejected(VerificationFailure.USER_NOT_FOUND)

        decision = self._gate.check(user.role)
        if not decision.eligible:
            logger.debug(
                "Magic link verification denied: %s (role=%s)",
                decision.reason,
                user.role,
            )
            return VerificationResult.rejected(VerificationFailure.ROLE_INELIGIBLE)

        try:
            credentials = await self._exchanger.exchange(db, user, context)
        except Exception:
            # Token stays unused so the same link can be retried
            await db.rollback()
            logger.exception("Session exchange failed for magic link verification")
            return VerificationResult.rejected(
                VerificationFailure.SESSION_EXCHANGE_FAILED
            )

        logger.debug("Magic link verified; token kept active until expiry")
        return VerificationResult(user=user, credentials=credentials)
