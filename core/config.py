"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the staff auth service happen here. No
module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Both signing and payload-cipher keys follow the same rule:
      dev mode generates a random key with a warning, production mode refuses
      to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies
  on key entropy.

  ENCRYPTION_SECRET_KEY has no hardcoded fallback. The frontend must be
  configured with the same passphrase, so a silent default would mean every
  deployment shares one publicly known key.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or mail/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("staffauth.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
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
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    encryption_secret_key: str = ""
    database_url: str = "sqlite:///staffauth.db"

    # ------------------------------------------------------------------
    # Sessions and recovery
    # ------------------------------------------------------------------

    token_expire_seconds: int = 24 * 60 * 60
    recovery_token_ttl_seconds: int = 30 * 60
    inactivity_timeout_seconds: int = 10 * 60

    # ------------------------------------------------------------------
    # Frontend
    # ------------------------------------------------------------------

    frontend_url: str = "http://localhost:3001"
    cors_origins: list[str] = []

    # ------------------------------------------------------------------
    # Google sign-in (optional -- empty string means the flow is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    google_callback_url: str = "http://localhost:3000/auth/google/callback"

    # ------------------------------------------------------------------
    # Mail (optional -- empty SMTP_HOST disables password recovery mail)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "no-reply@localhost"
    smtp_starttls: bool = True

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Derived flags
    # ------------------------------------------------------------------

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def mail_enabled(self) -> bool:
        return bool(self.smtp_host)

    @property
    def allowed_origins(self) -> list[str]:
        return self.cors_origins or [self.frontend_url]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_keys(self) -> "Settings":
        """Enforce the key policy for SECRET_KEY and ENCRYPTION_SECRET_KEY.

        Dev mode (DEBUG=true): auto-generate random keys with a warning.
            Sessions and encrypted client payloads will not survive restart.

        Production mode (DEBUG=false or not set): refuse to start if either
            key is missing.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        if not self.encryption_secret_key:
            if self.debug:
                self.encryption_secret_key = secrets.token_hex(32)
                logger.warning(
                    "Using auto-generated ENCRYPTION_SECRET_KEY. Clients sending encryptedData will fail to decrypt."
                )
            else:
                raise ValueError(
                    "ENCRYPTION_SECRET_KEY is required in production mode. "
                    "It must match the passphrase configured in the frontend."
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
