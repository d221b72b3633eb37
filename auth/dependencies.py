"""
auth/dependencies.py -- Authorization gate and its FastAPI Depends() helpers.

The gate is a pure function of the Authorization header:

  1. Header absent or empty         -> Unauthorized("missing token")
  2. Not exactly "Bearer <token>"   -> Unauthorized("malformed header")
  3. AuthService.verify_user(token) -> any auth failure becomes Unauthorized
  4. Success                        -> the resolved User

authorize() implements those steps without touching FastAPI, so it can be
unit-tested with a plain string. get_current_user() adapts it to a request
and attaches the identity to request.state.user for downstream handlers.

StorageError is deliberately NOT converted: a store outage is a server-side
failure (503), not a reason to tell the client its token is bad.

Layer rule: no imports from users/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.models import User
from auth.service import AuthService
from core.errors import InvalidTokenError, TokenRevoked, Unauthorized, UserNotFound

logger = logging.getLogger("useraccounts.auth")

_SCHEME = "Bearer"


def extract_bearer_token(header: str | None) -> str:
    """Return the raw token from an Authorization header value."""
    if not header:
        raise Unauthorized("missing token")
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != _SCHEME or not parts[1]:
        raise Unauthorized("malformed header")
    return parts[1]


def authorize(header: str | None, auth_service: AuthService) -> User:
    """Run the full gate: header parsing, token verification, identity lookup."""
    token = extract_bearer_token(header)
    try:
        return auth_service.verify_user(token)
    except (InvalidTokenError, TokenRevoked, UserNotFound) as exc:
        logger.debug("Bearer token rejected: %s", exc.__class__.__name__)
        raise Unauthorized(exc.__class__.__name__) from exc


def get_current_user(request: Request) -> User:
    """Require a valid bearer token. Raises Unauthorized (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = authorize(request.headers.get("Authorization"), request.app.state.auth_service)
    request.state.user = user
    return user


def get_bearer_token(request: Request) -> str:
    """Require a well-formed Authorization header and return the raw token.

    Does not verify the token. Used by logout, which must stay idempotent for
    tokens that are already revoked.
    """
    return extract_bearer_token(request.headers.get("Authorization"))
