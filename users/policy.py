"""
users/policy.py -- The canonical validation policy for user records.

One frozen dataclass holds every rule as data (length bounds, patterns, the
optional email domain allowlist). Changing a rule means changing a setting,
not adding a branch. from_settings() builds the policy from Settings; the
defaults reproduce the historical rules:

  username      3-20 chars, letters and digits only
  password      at least 8 chars, at most 72 bytes (bcrypt input limit)
  first/last    3-20 chars
  age           optional, at least 16
  email         user@domain.tld; domain restricted only when an allowlist is set

Validation stops at the first failing field and raises UserValidationError
with that field's name and a human-readable message.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.errors import UserValidationError

if TYPE_CHECKING:
    from core.config import Settings

USERNAME_PATTERN = r"^[a-zA-Z0-9]+$"
EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"


@dataclass(frozen=True)
class ValidationPolicy:
    username_length: tuple[int, int] = (3, 20)
    username_pattern: str = USERNAME_PATTERN
    password_min_length: int = 8
    password_max_bytes: int = 72
    name_length: tuple[int, int] = (3, 20)
    min_age: int = 16
    email_pattern: str = EMAIL_PATTERN
    email_domain_allowlist: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> ValidationPolicy:
        return cls(
            username_length=(settings.username_min_length, settings.username_max_length),
            password_min_length=settings.password_min_length,
            email_domain_allowlist=tuple(d.lower().lstrip("@") for d in settings.email_domain_allowlist),
        )

    # ------------------------------------------------------------------
    # Field rules
    # ------------------------------------------------------------------

    def check_username(self, username: str) -> None:
        low, high = self.username_length
        if not low <= len(username) <= high:
            raise UserValidationError("username", f"username must be {low}-{high} characters")
        if not re.fullmatch(self.username_pattern, username):
            raise UserValidationError("username", "username must contain only letters and numbers")

    def check_email(self, email: str) -> None:
        if not re.fullmatch(self.email_pattern, email):
            raise UserValidationError("email", "invalid email format")
        if self.email_domain_allowlist:
            domain = email.rsplit("@", 1)[1].lower()
            if domain not in self.email_domain_allowlist:
                allowed = ", ".join(f"@{d}" for d in self.email_domain_allowlist)
                raise UserValidationError("email", f"email must belong to an allowed domain ({allowed})")

    def check_password(self, password: str) -> None:
        if len(password) < self.password_min_length:
            raise UserValidationError("password", f"password must be at least {self.password_min_length} characters")
        if len(password.encode("utf-8")) > self.password_max_bytes:
            raise UserValidationError("password", f"password must be at most {self.password_max_bytes} bytes")

    def check_name(self, field: str, value: str) -> None:
        low, high = self.name_length
        label = field.replace("_", " ")
        if not low <= len(value) <= high:
            raise UserValidationError(field, f"{label} must be {low}-{high} characters")

    def check_age(self, age: int | None) -> None:
        if age is not None and age < self.min_age:
            raise UserValidationError("age", f"age must be at least {self.min_age}")

    # ------------------------------------------------------------------
    # Record rules
    # ------------------------------------------------------------------

    def validate_new_user(
        self,
        username: str,
        password: str,
        email: str,
        first_name: str,
        last_name: str,
        age: int | None = None,
    ) -> None:
        """Validate every field of a registration, in a fixed order."""
        self.check_username(username)
        self.check_email(email)
        self.check_password(password)
        self.check_name("first_name", first_name)
        self.check_name("last_name", last_name)
        self.check_age(age)

    def validate_update(self, changes: dict) -> None:
        """Validate only the fields present in a partial update."""
        if "username" in changes:
            self.check_username(changes["username"])
        if "email" in changes:
            self.check_email(changes["email"])
        if "password" in changes:
            self.check_password(changes["password"])
        for field in ("first_name", "last_name"):
            if field in changes:
                self.check_name(field, changes[field])
        if "age" in changes:
            self.check_age(changes["age"])
