"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the supplier gate happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): DEBUG-conditional SECRET_KEY logic. Dev mode
      generates a key with a warning, production mode refuses to start without
      one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Session tokens and
  document access tokens are both HS256-signed with it.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, suppliers/ or notifications/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("suppliergate.config")


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
    database_url: str = "sqlite:///suppliergate.db"
    base_url: str = "http://localhost:8000"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # ------------------------------------------------------------------
    # Tokens and cookies
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_expire_seconds: int = 24 * 3600
    # Scoped document links: owner downloads vs staff inline views
    download_link_seconds: int = 15 * 60
    view_link_seconds: int = 30 * 60

    # ------------------------------------------------------------------
    # Supplier document uploads
    # ------------------------------------------------------------------

    upload_dir: str = "uploads/suppliers"
    max_upload_bytes: int = 5 * 1024 * 1024
    max_upload_files: int = 3
    allowed_upload_types: list[str] = ["application/pdf"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    auth_rate_limit: str = "5 per 30 minutes"
    api_rate_limit: str = "100 per 15 minutes"

    # ------------------------------------------------------------------
    # Notifications (Brevo transactional email -- empty key disables sending)
    # ------------------------------------------------------------------

    brevo_api_key: str = ""
    brevo_sender_email: str = "no-reply@localhost"
    brevo_sender_name: str = "Supplier Gate"
    notify_max_attempts: int = 3
    notify_backoff_seconds: float = 2.0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions and document links will not survive a restart.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.max_upload_files < 1:
            raise ValueError("MAX_UPLOAD_FILES must be at least 1.")
        if self.notify_max_attempts < 1:
            raise ValueError("NOTIFY_MAX_ATTEMPTS must be at least 1.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
