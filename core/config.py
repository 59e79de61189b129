"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for UserGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Out-of-range security parameters are a
      hard startup failure rather than a silent fallback.

Settings are read once by the process entry points (api/main.py lifespan,
main.py CLI) and handed to the auth services explicitly. Nothing under
auth/ calls get_settings() itself.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("usergate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'usergate.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    the ranges the auth layer relies on.
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
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Ignored for SQLite, which SQLAlchemy pools per thread.
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    session_ttl_hours: int = 24
    bcrypt_rounds: int = 10
    default_role: str = "user"
    # False: unknown role names in a user update are dropped.
    # True: they are rejected with a 400.
    strict_role_names: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_auth_parameters(self) -> "Settings":
        """Reject parameter values the auth layer cannot honour.

        bcrypt only accepts cost factors between 4 and 31. A zero or negative
        session TTL would issue tokens that are expired on arrival. An empty
        database URL would make create_engine() fail later with a less
        helpful message.
        """
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.session_ttl_hours <= 0:
            raise ValueError("SESSION_TTL_HOURS must be a positive number of hours.")
        if not self.database_url:
            raise ValueError("DATABASE_URL must not be empty.")
        if not self.debug and self.database_url.startswith("sqlite"):
            logger.warning("Using SQLite outside DEBUG mode. Set DATABASE_URL to a server database in production.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
