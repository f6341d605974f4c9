"""Email delivery of magic links via the Resend API.

Simple HTTP POST to Resend with a fixed plain-text body (no templates).
Delivery failures raise ``EmailDeliveryError`` so the issuer can record
them on the token row; they are never reported to the requester.
"""

import logging
from typing import Protocol

import httpx

from app.core.config import Settings
from app.core.errors import EmailDeliveryError

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


def build_magic_link_body(verification_url: str, expiration_minutes: int) -> str:
    """Render the fixed plain-text email body.

    Args:
        verification_url: Link carrying the token.
        expiration_minutes: Token lifetime shown to the recipient.

    Returns:
        Email body text.
    """
    return (
        "Login Request\n\n"
        "Click the link below to log in. "
        f"This link will expire in {expiration_minutes} minutes.\n\n"
        f"{verification_url}\n\n"
        "If you didn't request this link, you can safely ignore this email.\n\n"
        "Best regards,\n"
        "Your Team"
    )


class MagicLinkNotifier(Protocol):
    """Delivers a magic link to its recipient.

    Implementations raise ``EmailDeliveryError`` on failure.
    """

    async def send_magic_link(
        self,
        *,
        to_email: str,
        subject: str,
        verification_url: str,
        expiration_minutes: int,
    ) -> None: ...


class ResendEmailNotifier:
    """MagicLinkNotifier backed by the Resend HTTP API.

    Args:
        settings: Configuration snapshot (sender and API key).
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._from = settings.email_from
        self._api_key = settings.resend_api_key
        self._transport = transport

    async def send_magic_link(
        self,
        *,
        to_email: str,
        subject: str,
        verification_url: str,
        expiration_minutes: int,
    ) -> None:
        """Send a magic link email.

        Args:
            to_email: Recipient email address.
            subject: Subject line.
            verification_url: Link carrying the token.
            expiration_minutes: Token lifetime shown in the body.

        Raises:
            EmailDeliveryError: If the transport is unconfigured or the
                provider rejects or never answers the request.
        """
        api_key = self._api_key.get_secret_value()
        if not api_key:
            logger.error("Email transport is not configured (RESEND_API_KEY unset)")
            raise EmailDeliveryError("Email transport is not configured")

        logger.debug("Sending magic link email from %s", self._from)
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    _RESEND_API_URL,
                    headers={"Authorization": f"Bearer {api_key}"},
                    json={
                        "from": self._from,
                        "to": to_email,
                        "subject": subject,
                        "text": build_magic_link_body(
                            verification_url, expiration_minutes
                        ),
                    },
                    timeout=_RESEND_TIMEOUT,
                )
                resp.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.error(
                "Email provider did not answer within %.0fs; "
                "check network egress and provider status",
                _RESEND_TIMEOUT,
            )
            raise EmailDeliveryError(f"Timed out sending email: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                logger.error(
                    "Email provider refused credentials or sender (HTTP %d); "
                    "check RESEND_API_KEY and that EMAIL_FROM (%s) is a verified sender",
                    status,
                    self._from,
                )
            else:
                logger.error("Email provider rejected message (HTTP %d)", status)
            raise EmailDeliveryError(
                f"Email provider returned HTTP {status}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Could not reach email provider: %s", exc)
            raise EmailDeliveryError(f"Error sending email: {exc}") from exc

        logger.debug("Magic link email accepted by provider")
