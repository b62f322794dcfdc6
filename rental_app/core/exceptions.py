import logging

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    """Base for errors raised by the booking and chat services.

    Subclasses pin the HTTP status so services only pass a message. Being an
    HTTPException keeps ``safe_handler`` passing them through untouched.
    """

    status_code: int = 500
    default_message: str = "Something went wrong on our end. Please try again."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(status_code=self.status_code, detail=self.message)

    def __str__(self) -> str:
        return self.message


class InvalidInputError(AppError):
    status_code = 400
    default_message = "Invalid input"


class UnauthorizedError(AppError):
    status_code = 401
    default_message = "Not authenticated"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Access Denied"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Conflict"


class InvalidStateError(AppError):
    status_code = 409
    default_message = "Operation not allowed in the current state"


class ExpiredError(AppError):
    status_code = 400
    default_message = "The allowed time window has elapsed"


class UpstreamFailureError(AppError):
    status_code = 502
    default_message = "Payment provider is unavailable. Please try again later."


class InternalFailureError(AppError):
    status_code = 500


def error_body(message: str) -> dict:
    return {"status": False, "message": message, "data": None}


async def http_error_handler(request: Request, exc: HTTPException):
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    if exc.status_code >= 500:
        logger.error(f"[{exc.status_code}] {request.url.path}: {message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )
