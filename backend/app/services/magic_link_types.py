"""Shared value types for the magic link services.

Kept separate from the services so the API layer and tests can build
contexts without importing service internals.
"""

from dataclasses import dataclass

# Placeholder when the caller's IP or user agent cannot be determined
UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RequestContext:
    """Caller details captured from the HTTP request.

    Attributes:
        ip_address: Client IP (or "unknown").
        user_agent: User-Agent header (or "unknown").
        origin: Origin header, None when absent.
    """

    ip_address: str = UNKNOWN_CLIENT
    user_agent: str | None = UNKNOWN_CLIENT
    origin: str | None = None


@dataclass(frozen=True)
class IssuanceRequest:
    """A validated request for a magic link, handed to the async pipeline.

    Attributes:
        email: Normalized (stripped, lower-case) email address.
        context: Caller details recorded on every ledger row.
        redirect_url: Optional front-end landing page that receives the token.
    """

    email: str
    context: RequestContext
    redirect_url: str | None = None
