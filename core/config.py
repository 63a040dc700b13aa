"""
core/config.py -- Storefront settings, read once from the environment.

get_settings() is the only place environment variables are read. Other
modules take the Settings object (or values pulled from it) as arguments
instead of calling os.getenv().

How values arrive:
  Settings is a pydantic-settings BaseSettings, so each field is filled from
      the matching upper-case env var (frontend_url <- FRONTEND_URL) or from
      a .env file in the working directory, with pydantic doing the coercion.
      List fields take JSON, e.g. CORS_ORIGINS='["https://shop.example.com"]'.

  get_settings() is wrapped in lru_cache, so the process shares one instance.

Signing key:
  SECRET_KEY signs every session token and there is no server-side session
  list, so changing it signs everybody out. Under DEBUG a throwaway key is
  generated when none is set; otherwise startup fails. Keys under 32
  characters are refused in both modes.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, shop/, or mutations/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("storefront.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'storefront.db'}"

# Session cookie lifetime: 365 days.
ONE_YEAR_SECONDS = 60 * 60 * 24 * 365


class Settings(BaseSettings):
    """Every tunable the storefront reads from its environment.

    Each field has a default, so tests can build Settings(...) with keyword
    overrides and no .env present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; check_signing_key() replaces it or refuses to start.
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions and password reset
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = ONE_YEAR_SECONDS
    reset_token_ttl_seconds: int = 60 * 60
    # Base URL of the storefront UI; reset emails link to <frontend_url>/reset.
    frontend_url: str = "http://localhost:7777"

    # ------------------------------------------------------------------
    # Outbound mail (empty smtp_host means log-only delivery)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    mail_from: str = "no-reply@storefront.local"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    # JSON lists in the environment, e.g. ALLOWED_HOSTS='["shop.example.com"]'
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:7777", "http://127.0.0.1:7777"]

    # ------------------------------------------------------------------
    # Rate limiting (signin and reset requests)
    # ------------------------------------------------------------------

    signin_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Signing key check
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def check_signing_key(self) -> "Settings":
        """Fill in or reject SECRET_KEY once every field is known.

        With DEBUG on, a missing key becomes a random 64-char one and every
        restart signs users out. With DEBUG off, a missing key is fatal.
        """
        if not self.secret_key:
            if not self.debug:
                raise ValueError(
                    "SECRET_KEY is not set. Put it in the environment or .env, "
                    "or set DEBUG=true to run with a throwaway key."
                )
            self.secret_key = secrets.token_hex(32)
            logger.warning("SECRET_KEY not set; generated a throwaway key for this process.")
        if len(self.secret_key) < 32:
            raise ValueError(f"SECRET_KEY is {len(self.secret_key)} characters; at least 32 are required.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Build Settings on first call and hand back the same object afterwards.

    Tests that change the environment must call get_settings.cache_clear().
    """
    return Settings()
