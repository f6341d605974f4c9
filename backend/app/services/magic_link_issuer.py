"""Magic link issuance pipeline.

Runs after the requester has already received the generic
acknowledgement, so nothing here can influence the response shape or
timing. Outcomes are observable only through the token ledger and logs.

Pipeline for one request:
1. Per-email rate limit (audit row on rejection)
2. Directory lookup (audit row when the email is unknown)
3. Role eligibility (audit row with the policy reason)
4. Generate a 256-bit token, expiry = now + configured minutes
5. Supersede live tokens, insert the new one with delivery pending
6. Build the verification URL and send it
7. Record the delivery outcome on the token row
"""

import logging
import secrets
from datetime import UTC, datetime, timedelta
from urllib.parse import quote, urlsplit

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings
from app.core.email import MagicLinkNotifier
from app.repositories.magic_link_token_repository import MagicLinkTokenRepository
from app.repositories.user_repository import UserRepository
from app.services.eligibility_gate import RoleEligibilityGate
from app.services.magic_link_rate_limiter import (
    MagicLinkRateLimiter,
    RateLimitOutcome,
)
from app.services.magic_link_types import IssuanceRequest

logger = logging.getLogger(__name__)

USER_NOT_FOUND_REASON = "User does not exist"

# 32 random bytes -> 64 hex chars (256 bits of entropy)
_TOKEN_BYTES = 32


def generate_token() -> str:
    """Generate a magic link token from the OS CSPRNG."""
    return secrets.token_hex(_TOKEN_BYTES)


def _origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}".lower()


class MagicLinkIssuer:
    """Issues magic links and records every attempt in the token ledger.

    Args:
        settings: Configuration snapshot.
        session_factory: Opens the sessions used by the pipeline; the
            request-scoped session is closed by the time it runs.
        notifier: Delivers the link.
        gate: Role eligibility policy. Defaults to the configured lists.
        rate_limiter: Per-email ceiling. Defaults to the configured ceiling.
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: MagicLinkNotifier,
        gate: RoleEligibilityGate | None = None,
        rate_limiter: MagicLinkRateLimiter | None = None,
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory
        self._notifier = notifier
        self._gate = gate or RoleEligibilityGate.from_settings(settings)
        self._rate_limiter = rate_limiter or MagicLinkRateLimiter(settings)
        self._redirect_origins = frozenset(
            _origin_of(origin)
            for origin in [*settings.allowed_origins, settings.public_url]
        )

    def _redirect_allowed(self, redirect_url: str) -> bool:
        if not self._settings.magic_link_restrict_redirects:
            return True
        return _origin_of(redirect_url) in self._redirect_origins

    def build_verification_url(self, token: str, redirect_url: str | None) -> str:
        """Build the link sent by email.

        A caller-supplied redirect base lets a front end own the landing
        page. With magic_link_restrict_redirects on, it is honoured only
        when its origin is a configured front-end origin or the public URL;
        otherwise the default verify endpoint is used.

        Args:
            token: Bearer secret.
            redirect_url: Optional landing page supplied by the requester.

        Returns:
            Verification URL carrying the token as a query parameter.
        """
        quoted = quote(token, safe="")
        if redirect_url:
            if self._redirect_allowed(redirect_url):
                separator = "&" if "?" in redirect_url else "?"
                return f"{redirect_url}{separator}token={quoted}"
            logger.warning(
                "Ignoring redirect URL with unrecognised origin: %s",
                _origin_of(redirect_url),
            )
        base = self._settings.public_url.rstrip("/")
        return f"{base}{self._settings.magic_link_verify_endpoint}?token={quoted}"

    async def process_request(self, request: IssuanceRequest) -> None:
        """Run the issuance pipeline for one request.

        Never raises: the requester was answered before this started, so
        failures are logged and left for operators.

        Args:
            request: Validated issuance request.
        """
        async with self._session_factory() as db:
            try:
                await self._issue(db, request)
            except Exception:
                await db.rollback()
                logger.exception("Error processing magic link request")

    async def _issue(self, db: AsyncSession, request: IssuanceRequest) -> None:
        email = request.email
        context = request.context
        now = datetime.now(UTC)

        outcome = await self._rate_limiter.check_and_record(
            db, email, context, now=now
        )
        if outcome is RateLimitOutcome.RATE_LIMITED:
            await db.commit()
            return

        user = await UserRepository.get_by_email(db, email)
        if user is None:
            logger.debug("Magic link requested for unknown email; recording attempt")
            await MagicLinkTokenRepository.record_audit(
                db,
                email=email,
                reason=USER_NOT_FOUND_REASON,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                now=now,
            )
            await db.commit()
            return

        decision = self._gate.check(user.role)
        if not decision.eligible:
            logger.debug("Magic link denied: %s (role=%s)", decision.reason, user.role)
            await MagicLinkTokenRepository.record_audit(
                db,
                email=email,
                reason=decision.reason or "User role not eligible",
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                now=now,
            )
            await db.commit()
            return

        token = generate_token()
        expires_at = now + timedelta(
            minutes=self._settings.magic_link_expiration_minutes
        )

        superseded = await MagicLinkTokenRepository.supersede_live(db, email, now=now)
        if superseded:
            logger.debug("Superseded %d live magic link token(s)", superseded)
        await MagicLinkTokenRepository.create(
            db,
            email=email,
            token=token,
            expires_at=expires_at,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            created_at=now,
        )
        await db.commit()

        verification_url = self.build_verification_url(token, request.redirect_url)
        logger.debug("Magic link generated, expires at %s", expires_at.isoformat())

        try:
            await self._notifier.send_magic_link(
                to_email=user.email,
                subject=self._settings.magic_link_subject,
                verification_url=verification_url,
                expiration_minutes=self._settings.magic_link_expiration_minutes,
            )
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            logger.error("Failed to send magic link email: %s", reason)
            await MagicLinkTokenRepository.mark_email_failed(db, token, reason)
        else:
            await MagicLinkTokenRepository.mark_email_sent(db, token)
            logger.debug("Magic link email sent")
        await db.commit()
