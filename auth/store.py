"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and revoked tokens.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Services and routes
never touch SQL directly.

CredentialStore is the narrow protocol the auth core consumes (two lookups,
two revocation operations). UserStore satisfies it structurally; unit tests
substitute an in-memory fake without a database.

Security:
  All queries use bound parameters. No f-strings in SQL.

Soft delete:
  Users are tombstoned with deleted_at rather than removed. Every lookup
  filters on deleted_at IS NULL. Username/email uniqueness is a partial unique
  index over live rows only, so a deleted user's username can be reused.

Errors:
  SQLAlchemyError is translated into StorageError at this boundary. The one
  exception is IntegrityError on insert/update, which means a uniqueness race
  was lost and becomes DuplicateUserError (users) or a no-op (revoked tokens).

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import (
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import User
from core.errors import DuplicateUserError, StorageError

logger = logging.getLogger("useraccounts.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False),
    Column("email", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("first_name", String(255), nullable=False, server_default=""),
    Column("last_name", String(255), nullable=False, server_default=""),
    Column("age", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),  # soft-delete tombstone
)

# Partial unique indexes: uniqueness holds across live (non-deleted) rows only.
Index(
    "uq_users_username_live",
    _users.c.username,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)
Index(
    "uq_users_email_live",
    _users.c.email,
    unique=True,
    sqlite_where=_users.c.deleted_at.is_(None),
    postgresql_where=_users.c.deleted_at.is_(None),
)

_revoked_tokens = Table(
    "revoked_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", Text, nullable=False, unique=True),
    Column("revoked_at", String(32), nullable=False),
    Column("expires_at", Float, nullable=False, index=True),  # epoch seconds, from the token's exp
)

# Fields update_user() accepts. Anything else is a programming error.
_MUTABLE_USER_FIELDS = frozenset({"username", "email", "hashed_password", "first_name", "last_name", "age"})


# ---------------------------------------------------------------------------
# Protocol consumed by the auth core
# ---------------------------------------------------------------------------


class CredentialStore(Protocol):
    """The store operations AuthService depends on."""

    def find_by_username(self, username: str) -> User | None: ...

    def find_by_id(self, user_id: int) -> User | None: ...

    def insert_revoked_token(self, token: str, expires_at: float) -> None: ...

    def is_revoked(self, token: str) -> bool: ...


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into StorageError.

    IntegrityError passes through untouched; callers that expect it handle it
    inside the block.
    """
    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        logger.error("Store operation %s failed: %s", operation, exc.__class__.__name__)
        raise StorageError() from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records and revoked tokens.

    Usage:
        store = UserStore("sqlite:///accounts.db")
        user_id = store.create_user(User(username="alice", email="alice@example.com", hashed_password=h))
        user = store.find_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        with _storage_errors("create_schema"):
            _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises DuplicateUserError if a live user already holds the username or
        email (a concurrent request won the race past the service pre-check).
        """
        now = _now_iso()
        with _storage_errors("create_user"), self.engine.connect() as conn:
            try:
                result = conn.execute(
                    _users.insert().values(
                        username=user.username,
                        email=user.email,
                        hashed_password=user.hashed_password,
                        first_name=user.first_name,
                        last_name=user.last_name,
                        age=user.age,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                raise DuplicateUserError() from exc
            return result.inserted_primary_key[0]

    def find_by_username(self, username: str) -> User | None:
        """Look up a live user by exact username (case-sensitive)."""
        with _storage_errors("find_by_username"), self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.username == username) & _users.c.deleted_at.is_(None))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email(self, email: str) -> User | None:
        """Look up a live user by exact email address."""
        with _storage_errors("find_by_email"), self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.email == email) & _users.c.deleted_at.is_(None))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User | None:
        """Look up a live user by primary key."""
        with _storage_errors("find_by_id"), self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.id == user_id) & _users.c.deleted_at.is_(None))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all live users ordered by id."""
        with _storage_errors("list_users"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.deleted_at.is_(None)).order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on a live user and stamp updated_at.

        Accepted fields: username, email, hashed_password, first_name,
        last_name, age. Unknown keys raise ValueError rather than being
        silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        Raises DuplicateUserError if the new username/email collides.
        """
        unknown = set(fields) - _MUTABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        fields["updated_at"] = _now_iso()
        with _storage_errors("update_user"), self.engine.connect() as conn:
            try:
                result = conn.execute(
                    _users.update()
                    .where((_users.c.id == user_id) & _users.c.deleted_at.is_(None))
                    .values(**fields)
                )
                conn.commit()
            except IntegrityError as exc:
                raise DuplicateUserError() from exc
        return result.rowcount > 0

    def soft_delete_user(self, user_id: int) -> bool:
        """Tombstone a live user. Returns True if deleted, False if not found.

        The row stays in the table; every lookup stops returning it, and tokens
        issued to it fail verification with UserNotFound.
        """
        now = _now_iso()
        with _storage_errors("soft_delete_user"), self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & _users.c.deleted_at.is_(None))
                .values(deleted_at=now, updated_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Revoked tokens
    # ------------------------------------------------------------------

    def insert_revoked_token(self, token: str, expires_at: float) -> None:
        """Record a logged-out token. Idempotent: a repeat insert is a no-op.

        The UNIQUE constraint on token turns a second logout of the same token
        into an IntegrityError, which is swallowed here -- the token is already
        revoked, which is exactly what the caller asked for.
        """
        with _storage_errors("insert_revoked_token"), self.engine.connect() as conn:
            try:
                conn.execute(_revoked_tokens.insert().values(token=token, revoked_at=_now_iso(), expires_at=expires_at))
                conn.commit()
            except IntegrityError:
                conn.rollback()
                logger.debug("Token already revoked; insert skipped")

    def is_revoked(self, token: str) -> bool:
        """Return True if the raw token string has been revoked."""
        with _storage_errors("is_revoked"), self.engine.connect() as conn:
            row = conn.execute(select(_revoked_tokens.c.id).where(_revoked_tokens.c.token == token)).fetchone()
        return row is not None

    def count_revoked_tokens(self) -> int:
        with _storage_errors("count_revoked_tokens"), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_revoked_tokens)).scalar()
        return result or 0

    def purge_expired_revoked_tokens(self, now: float | None = None) -> int:
        """Delete revoked-token rows whose token has expired. Returns rows removed.

        Safe because an expired token fails verification before the revocation
        list is ever consulted.
        """
        cutoff = time.time() if now is None else now
        with _storage_errors("purge_expired_revoked_tokens"), self.engine.connect() as conn:
            result = conn.execute(_revoked_tokens.delete().where(_revoked_tokens.c.expires_at < cutoff))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        first_name=row.first_name,
        last_name=row.last_name,
        age=row.age,
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )
