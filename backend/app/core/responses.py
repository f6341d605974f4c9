"""Response envelope models.

Every magic link endpoint answers with ``{"success": bool, "message": str}``,
plus ``data`` on a successful verification. Front ends branch on
``success`` only, so the envelope is identical for every rejection.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class MessageResponse(BaseModel):
    """Envelope without payload (acknowledgements and errors).

    Usage in exception handlers:
        return JSONResponse(
            status_code=exc.status_code,
            content=MessageResponse(success=False, message=exc.message).model_dump(),
        )
    """

    success: bool
    message: str


class DataResponse(MessageResponse, Generic[T]):
    """Envelope carrying a payload on success.

    Usage:
        @router.get("/verify")
        async def verify(...) -> DataResponse[VerifiedSession]:
            return DataResponse(success=True, message="...", data=session)
    """

    data: T
