from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .exceptions import error_body


class ValidationErrorHandler:
    async def __call__(self, request: Request, exc: RequestValidationError):
        messages = []

        for err in exc.errors():
            field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            msg = str(err.get("msg"))
            messages.append(f"{field}: {msg}" if field else msg)

        return JSONResponse(
            status_code=400,
            content=error_body("; ".join(messages) or "Validation failed"),
        )
