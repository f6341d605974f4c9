"""Authentication helpers for access token creation and cookie management.

Shared utilities used by the session exchange and the verify endpoint:
- create_access_token: signed HS256 JWT for a verified identity
- hash_refresh_token: at-rest digest of a refresh token
- refresh_cookie_policy / set_refresh_cookie: httpOnly refresh cookie
"""

import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Literal

import jwt
from fastapi import Response

from app.core.config import Settings


def create_access_token(
    *,
    user_id: str,
    email: str,
    role: str | None,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT with standard claims.

    Args:
        user_id: User UUID string for the sub claim.
        email: User email, carried for downstream convenience.
        role: User role identifier (may be None).
        settings: Configuration snapshot (secret, issuer, audience, TTL).
        expires_delta: Time until expiration. Defaults to the configured
            access token TTL.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    ttl = expires_delta or timedelta(minutes=settings.access_token_ttl_minutes)
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + ttl,
        "iat": now,
    }
    return jwt.encode(
        payload, settings.auth_secret.get_secret_value(), algorithm="HS256"
    )


def hash_refresh_token(token: str) -> str:
    """SHA-256 hex digest used to store refresh tokens at rest."""
    return hashlib.sha256(token.encode()).hexdigest()


@dataclass(frozen=True)
class CookiePolicy:
    """Cookie attributes derived from the verifying request.

    Attributes:
        secure: Whether to set the Secure flag.
        samesite: SameSite attribute value.
    """

    secure: bool
    samesite: Literal["lax", "none"]


def refresh_cookie_policy(
    origin: str | None, host: str | None, settings: Settings
) -> CookiePolicy:
    """Choose Secure/SameSite for the refresh cookie.

    A request whose Origin does not contain the Host is cross-site and
    needs SameSite=None. Browsers reject SameSite=None without Secure, so
    a cross-site cookie is always Secure.

    Args:
        origin: Origin header of the request, if any.
        host: Host header of the request, if any.
        settings: Configuration snapshot (environment).

    Returns:
        CookiePolicy for the response.
    """
    origin = origin or ""
    cross_site = bool(origin and host and host not in origin)
    secure = origin.startswith("https://") or settings.is_production or cross_site
    return CookiePolicy(secure=secure, samesite="none" if cross_site else "lax")


def set_refresh_cookie(
    response: Response,
    token: str,
    *,
    policy: CookiePolicy,
    max_age: int,
    settings: Settings,
) -> None:
    """Set the httpOnly refresh token cookie on a response.

    Security: httpOnly prevents XSS cookie theft.

    Args:
        response: FastAPI response object.
        token: Refresh token string.
        policy: Secure/SameSite attributes for this request.
        max_age: Cookie lifetime in seconds.
        settings: Configuration snapshot (cookie name).
    """
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=token,
        httponly=True,
        secure=policy.secure,
        samesite=policy.samesite,
        path="/",
        max_age=max_age,
    )
