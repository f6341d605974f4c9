"""API error classes.

Every error rendered to a client carries a fixed, safe message. The
exception handlers in ``app.main`` turn these into the
``{"success": false, "message": ...}`` envelope.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "UNAUTHORIZED").
        message: Human-readable error message, safe to disclose.
        status_code: HTTP status code to return.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationError(APIError):
    """Request validation failed (400).

    Use for malformed email, missing token, etc. The message is specific
    and safe to disclose.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
        )


class UnauthorizedError(APIError):
    """Authentication failed (401).

    Use for every token-state and policy rejection at verification time.
    The message must be the same for all of them.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class AuthenticationFailedError(APIError):
    """Session exchange failed after a valid token (500).

    The token is left untouched so the client may retry the same link.
    """

    def __init__(
        self,
        message: str = "An error occurred during authentication. Please try again.",
    ) -> None:
        super().__init__(
            code="AUTHENTICATION_FAILED",
            message=message,
            status_code=500,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(
        self, message: str = "An error occurred while processing your request"
    ) -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )


class EmailDeliveryError(Exception):
    """Outbound email could not be delivered.

    Not an APIError: delivery happens after the caller was answered, so
    this only ever reaches logs and the token audit row.

    Attributes:
        reason: Short description stored in ``email_error``.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)
