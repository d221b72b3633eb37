"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the accounts API happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
at the composition root (api/main.py lifespan, main.py CLI) and pass the
values into constructors.

get_settings() is cached with lru_cache, so the environment is read once per
process. Field names map to upper-cased environment variables (secret_key ->
SECRET_KEY) and may also come from a .env file. The after-validator checks
the fields that must hold together before anything is built from them.

Security notes:
  SECRET_KEY is required in every mode. An empty or missing key raises at
  startup, before the app serves a single request. Keys shorter than 32
  characters are rejected outright -- HS256 signing relies on key entropy.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or users/.
"""

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Accounts API settings.

    Every field except secret_key has a default so Settings(secret_key=...)
    can be instantiated in tests without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured"; the validator raises.
    secret_key: str = ""
    database_url: str = "sqlite:///accounts.db"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = 24 * 60 * 60
    bcrypt_rounds: int = 12
    revoked_purge_interval_seconds: int = 60 * 60

    # ------------------------------------------------------------------
    # Registration and validation policy
    # ------------------------------------------------------------------

    self_registration_enabled: bool = True
    username_min_length: int = 3
    username_max_length: int = 20
    password_min_length: int = 8
    # JSON list in the environment, e.g. EMAIL_DOMAIN_ALLOWLIST='["gmail.com"]'.
    # Empty list accepts any domain.
    email_domain_allowlist: list[str] = []

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_startup_values(self) -> "Settings":
        """Refuse to start without a usable signing secret.

        There is no dev-mode fallback: a generated key would silently
        invalidate every issued token on restart.
        """
        if not self.secret_key or not self.secret_key.strip():
            raise ValueError(
                "SECRET_KEY is required. Set SECRET_KEY in your environment or .env file."
            )
        if len(self.secret_key) < _MIN_SECRET_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.token_expire_seconds <= 0:
            raise ValueError("TOKEN_EXPIRE_SECONDS must be positive.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: construct Settings(secret_key=...) directly, or call
    get_settings.cache_clear() after changing environment variables.
    """
    return Settings()
