"""
tests/test_user_service.py -- UserService against an in-memory UserStore.

Coverage:
  - create: validation, duplicate username/email pre-checks, bcrypt hashing
  - get / list; UserNotFound for missing and deleted users
  - update: partial changes, None ignored, password re-hashed, uniqueness
    against other users only, unknown keys rejected
  - delete: soft delete, username freed for re-registration
"""

from __future__ import annotations

import pytest

from auth.passwords import verify_password
from core.errors import DuplicateUserError, UserNotFound, UserValidationError
from users.service import UserService


def _register(service: UserService, username: str = "alice", email: str = "alice@example.com", **overrides):
    values = {
        "username": username,
        "password": "secret123",
        "email": email,
        "first_name": "Alice",
        "last_name": "Liddell",
    }
    values.update(overrides)
    return service.create_user(**values)


class TestCreateUser:
    def test_create_stores_hashed_password(self, user_service: UserService) -> None:
        user = _register(user_service, age=30)
        assert user.id is not None
        assert user.age == 30
        assert user.hashed_password != "secret123"
        assert verify_password("secret123", user.hashed_password)

    def test_validation_error(self, user_service: UserService) -> None:
        with pytest.raises(UserValidationError) as exc_info:
            _register(user_service, username="a!")
        assert exc_info.value.field == "username"

    def test_duplicate_username(self, user_service: UserService) -> None:
        _register(user_service)
        with pytest.raises(DuplicateUserError) as exc_info:
            _register(user_service, email="other@example.com")
        assert exc_info.value.detail == "username already taken"

    def test_duplicate_email(self, user_service: UserService) -> None:
        _register(user_service)
        with pytest.raises(DuplicateUserError) as exc_info:
            _register(user_service, username="alice2")
        assert exc_info.value.detail == "email already registered"


class TestReadUsers:
    def test_get_and_list(self, user_service: UserService) -> None:
        alice = _register(user_service)
        bob = _register(user_service, "bob", "bob@example.com", first_name="Bobby")
        assert user_service.get_user(bob.id).first_name == "Bobby"
        assert [u.id for u in user_service.list_users()] == [alice.id, bob.id]

    def test_get_missing(self, user_service: UserService) -> None:
        with pytest.raises(UserNotFound):
            user_service.get_user(999)


class TestUpdateUser:
    def test_partial_update(self, user_service: UserService) -> None:
        user = _register(user_service)
        updated = user_service.update_user(user.id, first_name="Alicia", last_name=None)
        assert updated.first_name == "Alicia"
        assert updated.last_name == "Liddell"

    def test_password_is_rehashed(self, user_service: UserService) -> None:
        user = _register(user_service)
        updated = user_service.update_user(user.id, password="newsecret456")
        assert verify_password("newsecret456", updated.hashed_password)
        assert not verify_password("secret123", updated.hashed_password)

    def test_keeping_own_username_is_allowed(self, user_service: UserService) -> None:
        user = _register(user_service)
        assert user_service.update_user(user.id, username="alice").username == "alice"

    def test_taking_another_username(self, user_service: UserService) -> None:
        _register(user_service)
        bob = _register(user_service, "bob", "bob@example.com")
        with pytest.raises(DuplicateUserError):
            user_service.update_user(bob.id, username="alice")

    def test_taking_another_email(self, user_service: UserService) -> None:
        _register(user_service)
        bob = _register(user_service, "bob", "bob@example.com")
        with pytest.raises(DuplicateUserError):
            user_service.update_user(bob.id, email="alice@example.com")

    def test_invalid_change(self, user_service: UserService) -> None:
        user = _register(user_service)
        with pytest.raises(UserValidationError):
            user_service.update_user(user.id, age=12)

    def test_unknown_field(self, user_service: UserService) -> None:
        user = _register(user_service)
        with pytest.raises(ValueError):
            user_service.update_user(user.id, hashed_password="x")

    def test_update_missing_user(self, user_service: UserService) -> None:
        with pytest.raises(UserNotFound):
            user_service.update_user(999, first_name="Nobody")


class TestDeleteUser:
    def test_delete(self, user_service: UserService) -> None:
        user = _register(user_service)
        user_service.delete_user(user.id)
        with pytest.raises(UserNotFound):
            user_service.get_user(user.id)
        with pytest.raises(UserNotFound):
            user_service.delete_user(user.id)

    def test_username_reusable_after_delete(self, user_service: UserService) -> None:
        first = _register(user_service)
        user_service.delete_user(first.id)
        second = _register(user_service)
        assert second.id != first.id
