"""
core/errors.py -- Exception taxonomy shared by auth/, users/ and api/.

Every error carries a machine-readable code, the HTTP status it maps to and a
default client-facing message. api/main.py registers one exception handler
for AccountsError and renders all of them through the same ErrorResponse
envelope, so routes raise domain errors instead of building HTTPExceptions.

All authentication failures share code "unauthorized" and status 401. The
subclasses exist so services and tests can tell the cases apart internally;
clients cannot.

Layer rule: core/ is the kernel. No imports from api/, auth/, or users/.
"""

from __future__ import annotations


class AccountsError(Exception):
    """Base class for every error raised by the accounts core."""

    code: str = "internal_error"
    status_code: int = 500
    message: str = "An unexpected error occurred."

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail
        super().__init__(detail or self.message)


# ---------------------------------------------------------------------------
# Authentication (401)
# ---------------------------------------------------------------------------


class AuthenticationError(AccountsError):
    code = "unauthorized"
    status_code = 401
    message = "Authentication required."


class InvalidCredentials(AuthenticationError):
    """Unknown username or wrong password -- deliberately indistinguishable."""

    message = "Invalid username or password."


class InvalidTokenError(AuthenticationError):
    """Malformed, mis-signed, wrong-algorithm, or expired token."""


class TokenRevoked(AuthenticationError):
    """Structurally valid token that was logged out."""


class Unauthorized(AuthenticationError):
    """Gate-level umbrella: the request carries no usable identity."""


# ---------------------------------------------------------------------------
# User records
# ---------------------------------------------------------------------------


class UserNotFound(AccountsError):
    code = "not_found"
    status_code = 404
    message = "User not found."


class UserValidationError(AccountsError):
    code = "validation_error"
    status_code = 400
    message = "User data failed validation."

    def __init__(self, field: str, detail: str) -> None:
        self.field = field
        super().__init__(detail)


class DuplicateUserError(AccountsError):
    code = "conflict"
    status_code = 409
    message = "A user with that username or email already exists."


# ---------------------------------------------------------------------------
# Server-side failures
# ---------------------------------------------------------------------------


class StorageError(AccountsError):
    code = "storage_unavailable"
    status_code = 503
    message = "The account store is unavailable."


class HashingError(AccountsError):
    message = "Password hashing failed."


class SigningError(AccountsError):
    message = "Token signing failed."
