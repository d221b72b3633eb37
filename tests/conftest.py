"""
tests/conftest.py -- Shared test fixtures for the accounts API.

This module provides:
  - make_settings(): Settings with a test secret and cheap bcrypt rounds
  - FakeCredentialStore: in-memory CredentialStore for AuthService unit tests
  - token_service / fake_store / auth_service: unit-level fixtures
  - user_store: in-memory UserStore (plain :memory:, single test)
  - api_client: TestClient wired to isolated stores through a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
api_client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

bcrypt_rounds=4 (the minimum bcrypt accepts) keeps hashing fast; the logic
under test does not depend on the cost factor.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Generator
from contextlib import asynccontextmanager, suppress

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, wire_services
from auth.models import User
from auth.passwords import hash_password
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings
from users.policy import ValidationPolicy
from users.service import UserService

TEST_SECRET = "test-secret-key-for-the-accounts-api-0123456789"
TEST_ROUNDS = 4
# Differs from the login TTL so the shared fixture token never equals a token
# returned by POST /auth/login in the same second.
SHARED_TOKEN_TTL = 3600

# Login is rate limited per client IP; every TestClient request comes from the
# same address, so the limiter would start returning 429 mid-suite.
limiter.enabled = False


def make_settings(**overrides) -> Settings:
    values = {"secret_key": TEST_SECRET, "bcrypt_rounds": TEST_ROUNDS, "database_url": "sqlite:///:memory:"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ---------------------------------------------------------------------------
# In-memory CredentialStore
# ---------------------------------------------------------------------------


class FakeCredentialStore:
    """Dict-backed stand-in for UserStore implementing the CredentialStore protocol.

    fail_with, when set, is raised by every operation -- used to simulate an
    unreachable database.
    """

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self.revoked: dict[str, float] = {}
        self.fail_with: Exception | None = None
        self._next_id = 1

    def add_user(self, user: User) -> User:
        user.id = self._next_id
        self._next_id += 1
        self.users[user.id] = user
        return user

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def find_by_username(self, username: str) -> User | None:
        self._check()
        for user in self.users.values():
            if user.username == username and user.deleted_at is None:
                return user
        return None

    def find_by_id(self, user_id: int) -> User | None:
        self._check()
        user = self.users.get(user_id)
        if user is None or user.deleted_at is not None:
            return None
        return user

    def insert_revoked_token(self, token: str, expires_at: float) -> None:
        self._check()
        self.revoked.setdefault(token, expires_at)

    def is_revoked(self, token: str) -> bool:
        self._check()
        return token in self.revoked


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(TEST_SECRET)


@pytest.fixture
def fake_store() -> FakeCredentialStore:
    """Fake store pre-loaded with alice / secret123 (id=1)."""
    store = FakeCredentialStore()
    store.add_user(
        User(
            username="alice",
            email="alice@example.com",
            first_name="Alice",
            last_name="Liddell",
            hashed_password=hash_password("secret123", rounds=TEST_ROUNDS),
        )
    )
    return store


@pytest.fixture
def auth_service(fake_store: FakeCredentialStore, token_service: TokenService) -> AuthService:
    return AuthService(fake_store, token_service, bcrypt_rounds=TEST_ROUNDS)


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def user_service(user_store: UserStore) -> UserService:
    return UserService(user_store, ValidationPolicy(), bcrypt_rounds=TEST_ROUNDS)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, user_store: UserStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test store into app.state through the same
    wire_services() the real lifespan uses. The purge_task is a long-sleeping
    coroutine so shutdown has a real asyncio.Task to cancel and await.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, settings, user_store)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.purge_task

    return test_lifespan


def _make_client(db_suffix: str, **setting_overrides):
    """Create a store on a named shared-memory database, seed alice, patch the lifespan.

    Returns (store, alice_id).

    db_suffix keeps modules from sharing state; time_ns() keeps repeated
    fixture instantiations within one module apart too.
    """
    db_url = f"sqlite:///file:test_accounts_{db_suffix}_{time.time_ns()}?mode=memory&cache=shared&uri=true"
    settings = make_settings(database_url=db_url, **setting_overrides)
    store = UserStore(db_url)
    service = UserService(store, ValidationPolicy.from_settings(settings), bcrypt_rounds=TEST_ROUNDS)
    alice = service.create_user(
        username="alice",
        password="secret123",
        email="alice@example.com",
        first_name="Alice",
        last_name="Liddell",
        age=30,
    )
    app.router.lifespan_context = _patch_lifespan(settings, store)
    return store, alice.id


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, alice_id) for API integration tests.

    alice / secret123 exists before the client starts; token is a valid
    bearer token for her. Tests that revoke tokens must log in again rather
    than revoke this shared one.
    """
    store, alice_id = _make_client("api")
    token = TokenService(TEST_SECRET, expire_seconds=SHARED_TOKEN_TTL).issue(alice_id)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, token, alice_id

    store.close()


@pytest.fixture
def closed_registration_client() -> Generator[tuple[TestClient, str], None, None]:
    """Yield (client, token) for an app with SELF_REGISTRATION_ENABLED=false."""
    store, alice_id = _make_client("closed", self_registration_enabled=False)
    token = TokenService(TEST_SECRET, expire_seconds=SHARED_TOKEN_TTL).issue(alice_id)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, token

    store.close()
