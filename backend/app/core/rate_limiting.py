"""Per-IP rate limiting configuration using slowapi.

Security: Coarse throttle on the verify endpoint so a single client
cannot brute-force token guesses at line rate. The per-email issuance
ceiling is a separate, database-backed mechanism
(``app.services.magic_link_rate_limiter``) because issuance answers
before any check runs.

Usage in routers:
    from app.core.rate_limiting import limiter

    @router.get("/verify")
    @limiter.limit(lambda: settings.rate_limit_verify)
    async def verify(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.responses import MessageResponse

# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with the standard envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        # Validate it looks like a time value
        int(retry_after.rstrip("s"))  # "60" or "60s" -> 60
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content=MessageResponse(
            success=False,
            message="Too many requests. Please try again later.",
        ).model_dump(),
        headers={"Retry-After": retry_after},
    )
