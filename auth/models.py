"""
auth/models.py -- Domain dataclasses for account and authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; api/models.py owns the HTTP shape.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A user account.

    hashed_password never leaves the store/service layer. API responses are
    built field by field from this dataclass and never include it.

    deleted_at is the soft-delete tombstone. The store filters tombstoned rows
    out of every lookup, so a User returned by the store always has
    deleted_at=None.
    """

    username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    id: int | None = None
    hashed_password: str | None = None
    age: int | None = None
    created_at: str | None = None  # ISO 8601, set by store on insert
    updated_at: str | None = None
    deleted_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of a bearer token.

    issued_at / expires_at are epoch seconds, as carried in the JWT.
    """

    user_id: int
    issued_at: int
    expires_at: int


@dataclass
class RevokedToken:
    """A logged-out token.

    expires_at mirrors the token's own exp claim (epoch seconds) so the purge
    sweep can drop rows that no longer need to be remembered: an expired token
    is rejected by signature/expiry verification anyway.
    """

    token: str
    expires_at: float
    id: int | None = None
    revoked_at: str | None = None
