"""
users/service.py -- CRUD over user records.

The service owns the business rules (validation policy, uniqueness
pre-checks, password hashing, soft delete); UserStore owns the SQL. Routes
call the service and map the returned User dataclasses to response models.

Uniqueness is checked twice: a friendly pre-check here ("username already
taken") and the partial unique index in the store, which catches the race
where two registrations pass the pre-check together.
"""

from __future__ import annotations

import logging

from auth.models import User
from auth.passwords import DEFAULT_ROUNDS, hash_password
from auth.store import UserStore
from core.errors import DuplicateUserError, UserNotFound
from users.policy import ValidationPolicy

logger = logging.getLogger("useraccounts.users")

_UPDATABLE = ("username", "password", "email", "first_name", "last_name", "age")


class UserService:
    def __init__(
        self,
        store: UserStore,
        policy: ValidationPolicy | None = None,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
    ) -> None:
        self.store = store
        self.policy = policy or ValidationPolicy()
        self.bcrypt_rounds = bcrypt_rounds

    def list_users(self) -> list[User]:
        return self.store.list_users()

    def get_user(self, user_id: int) -> User:
        user = self.store.find_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def create_user(
        self,
        username: str,
        password: str,
        email: str,
        first_name: str,
        last_name: str,
        age: int | None = None,
    ) -> User:
        """Validate, hash and insert a new user. Returns the stored record.

        Raises UserValidationError, DuplicateUserError, HashingError or
        StorageError.
        """
        self.policy.validate_new_user(username, password, email, first_name, last_name, age)
        if self.store.find_by_username(username) is not None:
            raise DuplicateUserError("username already taken")
        if self.store.find_by_email(email) is not None:
            raise DuplicateUserError("email already registered")

        user = User(
            username=username,
            email=email,
            first_name=first_name,
            last_name=last_name,
            age=age,
            hashed_password=hash_password(password, rounds=self.bcrypt_rounds),
        )
        user_id = self.store.create_user(user)
        logger.info("Created user_id=%s", user_id)
        return self.get_user(user_id)

    def update_user(self, user_id: int, **changes) -> User:
        """Apply a partial update. Keys whose value is None are ignored.

        Only the supplied fields are validated. A new password is re-hashed;
        a new username/email must not belong to another live user.
        """
        unknown = set(changes) - set(_UPDATABLE)
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        changes = {k: v for k, v in changes.items() if v is not None}
        self.policy.validate_update(changes)

        current = self.get_user(user_id)
        if "username" in changes and changes["username"] != current.username:
            other = self.store.find_by_username(changes["username"])
            if other is not None and other.id != user_id:
                raise DuplicateUserError("username already taken")
        if "email" in changes and changes["email"] != current.email:
            other = self.store.find_by_email(changes["email"])
            if other is not None and other.id != user_id:
                raise DuplicateUserError("email already registered")

        fields = dict(changes)
        if "password" in fields:
            fields["hashed_password"] = hash_password(fields.pop("password"), rounds=self.bcrypt_rounds)

        if fields and not self.store.update_user(user_id, **fields):
            # Deleted between the lookup above and the write.
            raise UserNotFound()
        logger.info("Updated user_id=%s fields=%s", user_id, sorted(changes))
        return self.get_user(user_id)

    def delete_user(self, user_id: int) -> None:
        """Soft-delete a user. Raises UserNotFound if no live user has this id."""
        if not self.store.soft_delete_user(user_id):
            raise UserNotFound()
        logger.info("Deleted user_id=%s", user_id)
