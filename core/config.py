"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for mobiHub happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, password_reset_ttl_hours ->
      PASSWORD_RESET_TTL_HOURS).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Enforces the SECRET_KEY policy and the link token TTL policy.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and
       the link token HMAC both rely on key entropy.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

  Link token TTLs must be positive and distinct per action kind.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
catalog/, notify/, or workflows/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("mobihub.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///mobihub.db"
    # Base address the emailed links point at (the frontend, not this API).
    frontend_base_url: str = "http://localhost:3000"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    secure_cookies: bool = False
    token_expire_seconds: int = 3600
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Link tokens
    # ------------------------------------------------------------------

    account_confirmation_ttl_hours: int = 72
    password_reset_ttl_hours: int = 2
    team_invite_ttl_hours: int = 168
    ownership_transfer_ttl_hours: int = 120
    # When true, issuing a token deletes outstanding tokens of the same kind
    # for the same subject and email. Off by default: older links stay valid
    # until they expire or are used.
    supersede_prior_link_tokens: bool = False
    link_purge_interval_seconds: int = 6 * 60 * 60

    # ------------------------------------------------------------------
    # Mail (HTTP mail API, Resend-compatible payload)
    # ------------------------------------------------------------------

    mail_api_url: str = "https://api.resend.com/emails"
    # Empty means "no mail provider". DEBUG mode then logs messages instead.
    mail_api_key: str = ""
    mail_from: str = "mobiHub <noreply@mobihub.local>"
    mail_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    upload_dir: str = "uploads"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions and outstanding links will not survive restart.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. "
                    "Sessions and emailed links will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_link_ttls(self) -> "Settings":
        """Reject non-positive or duplicated link token TTLs."""
        ttls = {
            "ACCOUNT_CONFIRMATION_TTL_HOURS": self.account_confirmation_ttl_hours,
            "PASSWORD_RESET_TTL_HOURS": self.password_reset_ttl_hours,
            "TEAM_INVITE_TTL_HOURS": self.team_invite_ttl_hours,
            "OWNERSHIP_TRANSFER_TTL_HOURS": self.ownership_transfer_ttl_hours,
        }
        for name, hours in ttls.items():
            if hours <= 0:
                raise ValueError(f"{name} must be a positive number of hours.")
        if len(set(ttls.values())) != len(ttls):
            raise ValueError("Link token TTLs must differ per action kind.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
