"""
api/errors.py -- Render AccountsError subclasses as HTTP responses.

Shared by the exception handler in api/main.py and by routes that need to add
headers to an error response (login sets Cache-Control: no-store on failures
too). Lives outside api/main.py so routes never import the app module.
"""

from __future__ import annotations

from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse
from core.errors import AccountsError, AuthenticationError, UserValidationError


def envelope(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """The one place the {"error": {...}} body is built."""
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def error_response(exc: AccountsError) -> JSONResponse:
    """Build the ErrorResponse envelope for a domain error.

    Authentication failures collapse to the class-level message: the
    internal reason (missing header, revoked token, deleted user...) stays in
    the logs and never reaches the client. Validation and conflict errors do
    carry their detail, since it is what the client needs to fix the request.
    Server-side errors expose only the generic message.
    """
    detail: str | None = None
    if isinstance(exc, UserValidationError):
        detail = f"{exc.field}: {exc.detail}"
    elif not isinstance(exc, AuthenticationError) and exc.status_code < 500:
        detail = exc.detail

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return envelope(exc.status_code, exc.code, exc.message, detail, headers)
