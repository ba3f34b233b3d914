"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for tenantguard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead,
or accept a Settings instance from the caller (every auth component does, so
tests can pass Settings(...) without touching the process environment).

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file. Field names map to env var names
      (e.g. session_lifetime -> SESSION_LIFETIME). Type coercion and
      validation are built in.

  @model_validator(mode="after"): cross-field checks once all fields are
      resolved.

Security notes:
  encryption selects the credential digest. "sha1" is the default, "md5" is
  the legacy digest kept for existing password stores and logs a warning at
  startup, "bcrypt" is an opt-in salted hash (see auth/hashing.py).

Layer rule: core/ is the kernel. This module may not import from auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tenantguard.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'tenantguard.db'}"

_LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class Settings(BaseSettings):
    """Process-wide settings loaded from environment variables and .env file.

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
    database_url: str = _DEFAULT_DB_URL
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Security
    # ------------------------------------------------------------------

    encryption: Literal["sha1", "md5", "bcrypt"] = "sha1"
    # Identity is asserted by an external mechanism (e.g. a fronting proxy)
    # before the engine runs; local password checks are skipped.
    implicit_auth: bool = False

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # Remember-me lifetime in days. 0 keeps every session a browser session.
    session_lifetime: int = 30
    # Minutes a session without a remember-me expiry may sit unused before the
    # server discards it. 0 disables the idle cutoff.
    session_idle_timeout: int = 120
    session_cookie_name: str = "tenantguard_sid"
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_security(self) -> "Settings":
        """Reject negative session lifetimes and idle timeouts; warn on the legacy digest."""
        if self.session_lifetime < 0:
            raise ValueError("SESSION_LIFETIME must be zero or a positive number of days.")
        if self.session_idle_timeout < 0:
            raise ValueError("SESSION_IDLE_TIMEOUT must be zero or a positive number of minutes.")
        if self.encryption == "md5":
            logger.warning("ENCRYPTION=md5 selects the legacy credential digest. Prefer sha1 or bcrypt.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Apply the standard log format to the root logger.

    Library code only ever calls logging.getLogger(); entry points (the CLI,
    an ASGI host) call this once at startup.
    """
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format=_LOG_FORMAT,
        datefmt=_LOG_DATEFMT,
    )
