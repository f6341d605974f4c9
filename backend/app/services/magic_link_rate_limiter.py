"""Per-email rate limiter for magic link requests.

Counts ledger rows for an email in a trailing 60-minute window computed
at call time (sliding, not calendar-aligned). The count is a point-in-time
aggregate, so concurrent requests may overshoot the ceiling slightly; it
is an abuse deterrent, not a security boundary.

On hitting the ceiling the limiter also invalidates every live token for
the email, so a flood of requests cannot keep old links alive.
"""

import enum
import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.repositories.magic_link_token_repository import MagicLinkTokenRepository
from app.services.magic_link_types import RequestContext

logger = logging.getLogger(__name__)

RATE_WINDOW = timedelta(hours=1)

RATE_LIMIT_REASON = "Rate limit exceeded"


class RateLimitOutcome(enum.Enum):
    """Result of a rate limit check."""

    ALLOWED = "allowed"
    RATE_LIMITED = "rate_limited"


class MagicLinkRateLimiter:
    """Enforces the per-email hourly ceiling.

    Args:
        settings: Configuration snapshot (reads the hourly ceiling).
    """

    def __init__(self, settings: Settings) -> None:
        self._max_requests = settings.magic_link_max_requests_per_hour

    async def check_and_record(
        self,
        db: AsyncSession,
        email: str,
        context: RequestContext,
        *,
        now: datetime | None = None,
    ) -> RateLimitOutcome:
        """Check the window for an email, recording an audit row on rejection.

        Args:
            db: Async database session (caller commits).
            email: Normalized email address.
            context: Caller details for the audit row.
            now: Current time. Defaults to now.

        Returns:
            ALLOWED when under the ceiling, RATE_LIMITED otherwise.
        """
        now = now or datetime.now(UTC)
        count = await MagicLinkTokenRepository.count_since(db, email, now - RATE_WINDOW)

        if count < self._max_requests:
            return RateLimitOutcome.ALLOWED

        logger.debug(
            "Rate limit exceeded for magic link email (%d/%d per hour)",
            count,
            self._max_requests,
        )

        await MagicLinkTokenRepository.supersede_live(db, email, now=now)
        await MagicLinkTokenRepository.record_audit(
            db,
            email=email,
            reason=RATE_LIMIT_REASON,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            now=now,
        )
        return RateLimitOutcome.RATE_LIMITED
