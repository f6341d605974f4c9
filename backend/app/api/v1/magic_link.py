"""Magic link endpoints.

Passwordless sign-in for accounts in the identity directory.

Endpoints:
- GET /magic-link: liveness text
- POST /magic-link/generate: request a magic link email
- GET /magic-link/verify: exchange a token for access + refresh credentials

Security:
- generate answers with the same body for every well-formed email, before
  any lookup runs; all policy work happens in a background task
- verify collapses every token and policy rejection into one 401 message;
  the precise reason only reaches the logs
"""

import logging
import re
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Request, Response
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import AppSettings, ClientContext, DbSession, Issuer, Verifier
from app.core.auth import refresh_cookie_policy, set_refresh_cookie
from app.core.config import settings
from app.core.errors import (
    APIError,
    AuthenticationFailedError,
    UnauthorizedError,
    ValidationError,
)
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse, MessageResponse
from app.services.magic_link_types import IssuanceRequest
from app.services.magic_link_verifier import VerificationFailure

logger = logging.getLogger(__name__)

router = APIRouter()

# local@domain.tld, no whitespace, exactly one "@"
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_INVALID_EMAIL_MSG = "Please provide a valid email address"
_ACK_MSG = "If your email exists in our system, a magic link has been sent"
_MISSING_TOKEN_MSG = "Invalid or missing token"
_INVALID_LINK_MSG = "Invalid or expired link. Please request a new one."
_AUTH_SUCCESS_MSG = "Authentication successful"

# The only place a verification failure becomes an HTTP error. Every token
# and policy rejection shares one message so callers cannot tell them apart.
_FAILURE_ERRORS: dict[VerificationFailure, Callable[[], APIError]] = {
    VerificationFailure.MISSING_TOKEN: lambda: ValidationError(_MISSING_TOKEN_MSG),
    VerificationFailure.NOT_FOUND: lambda: UnauthorizedError(_INVALID_LINK_MSG),
    VerificationFailure.EXPIRED: lambda: UnauthorizedError(_INVALID_LINK_MSG),
    VerificationFailure.ALREADY_USED: lambda: UnauthorizedError(_INVALID_LINK_MSG),
    VerificationFailure.USER_NOT_FOUND: lambda: UnauthorizedError(_INVALID_LINK_MSG),
    VerificationFailure.ROLE_INELIGIBLE: lambda: UnauthorizedError(_INVALID_LINK_MSG),
    VerificationFailure.SESSION_EXCHANGE_FAILED: AuthenticationFailedError,
}


# ===================================================================
# Request / response models
# ===================================================================


class MagicLinkGenerateRequest(BaseModel):
    """Request body for POST /magic-link/generate.

    Fields are optional and untyped so that a missing or non-string email
    reaches the handler and gets the same 400 as a malformed one.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: Any = None
    redirect_url: Any = Field(default=None, alias="redirectUrl")


class VerifiedUser(BaseModel):
    """Public fields of the signed-in user."""

    id: str
    email: str
    first_name: str | None
    last_name: str | None


class VerifiedSession(BaseModel):
    """Payload of a successful verification."""

    user: VerifiedUser
    access_token: str
    refresh_token: str
    expires: int


def _redirect_of(body: MagicLinkGenerateRequest | None) -> str | None:
    # Non-string redirects are dropped; the default verify URL is used
    if body is None or not isinstance(body.redirect_url, str):
        return None
    return body.redirect_url


# ===================================================================
# GET /magic-link
# ===================================================================


@router.get("", response_class=PlainTextResponse)
async def magic_link_root() -> str:
    """Liveness text for the magic link mount point."""
    return "Magic Link Authentication Endpoint"


# ===================================================================
# POST /magic-link/generate
# ===================================================================


@router.post("/generate")
async def generate_magic_link(
    background_tasks: BackgroundTasks,
    context: ClientContext,
    issuer: Issuer,
    body: MagicLinkGenerateRequest | None = None,
) -> MessageResponse:
    """Request a magic link email.

    Always returns the same success body for a syntactically valid email,
    whether or not the account exists, is eligible, or is rate limited.
    The checks run as a background task after the response is sent, so
    response time does not depend on them either.
    """
    raw_email = body.email if body else None
    email = raw_email.strip().lower() if isinstance(raw_email, str) else ""
    if not email or not _EMAIL_PATTERN.match(email):
        logger.debug("Magic link request with missing or malformed email")
        raise ValidationError(_INVALID_EMAIL_MSG)

    background_tasks.add_task(
        issuer.process_request,
        IssuanceRequest(
            email=email,
            context=context,
            redirect_url=_redirect_of(body),
        ),
    )

    return MessageResponse(success=True, message=_ACK_MSG)


# ===================================================================
# GET /magic-link/verify
# ===================================================================


@router.get("/verify")
@limiter.limit(lambda: settings.rate_limit_verify)
async def verify_magic_link(
    request: Request,
    response: Response,
    context: ClientContext,
    app_settings: AppSettings,
    verifier: Verifier,
    db: DbSession,
    token: str | None = None,
) -> DataResponse[VerifiedSession]:
    """Exchange a magic link token for access and refresh credentials.

    The token is not marked used on success; it stays valid until it
    expires or a newer link supersedes it. A failed session exchange
    also leaves it untouched so the link can be retried.
    """
    result = await verifier.verify(db, token, context)
    if not result.ok:
        logger.debug("Magic link verification rejected: %s", result.failure)
        raise _FAILURE_ERRORS[result.failure]()

    user = result.user
    credentials = result.credentials

    policy = refresh_cookie_policy(
        context.origin, request.headers.get("host"), app_settings
    )
    set_refresh_cookie(
        response,
        credentials.refresh_token,
        policy=policy,
        max_age=credentials.refresh_max_age,
        settings=app_settings,
    )
    response.headers["Authorization"] = f"Bearer {credentials.access_token}"
    # Prevent token leakage via Referer header
    response.headers["Referrer-Policy"] = "no-referrer"

    return DataResponse[VerifiedSession](
        success=True,
        message=_AUTH_SUCCESS_MSG,
        data=VerifiedSession(
            user=VerifiedUser(
                id=str(user.id),
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
            ),
            access_token=credentials.access_token,
            refresh_token=credentials.refresh_token,
            expires=credentials.expires,
        ),
    )
