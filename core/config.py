"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Gatehouse happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment.

Security notes:
  A missing JWT_SECRET is a hard startup failure in every mode, debug included.
  There is no built-in development secret: a forgotten variable must stop the
  process, not silently sign tokens with a well-known key.

  JWT_SECRET shorter than 32 chars is rejected outright. HS256 signing relies
  on key entropy. Generate one with `python main.py keygen`.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
cache/, or options/.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatehouse.config")

_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_DATABASE_URL = f"sqlite:///{_ROOT / 'auth' / 'gatehouse.db'}"
DEFAULT_CACHE_PATH = str(_ROOT / "cache" / "gatehouse_cache.db")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field except jwt_secret has a documented fallback so a local run
    needs only JWT_SECRET. The model_validator enforces the secret policy.
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
    service_name: str = "gatehouse"
    version: str = "0.1.0"

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    # Any SQLAlchemy URL. Pool sizing applies only to non-SQLite engines.
    database_url: str = DEFAULT_DATABASE_URL
    db_pool_size: int = 10
    db_max_overflow: int = 90
    db_pool_recycle: int = 3600
    db_echo: bool = False

    # ------------------------------------------------------------------
    # JWT
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; the validator raises.
    jwt_secret: str = ""
    jwt_expire_hours: int = 168
    jwt_issuer: str = "gatehouse"

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    cache_backend: Literal["redis", "sqlite"] = "redis"
    cache_host: str = "localhost"
    cache_port: int = 6379
    cache_password: str = ""
    cache_db: int = 0
    cache_prefix: str = "gatehouse:"
    cache_timeout_seconds: float = 2.0
    cache_sqlite_path: str = DEFAULT_CACHE_PATH
    cache_default_ttl: int = 300
    cache_purge_interval_seconds: int = 3600

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_expire_hours")
    @classmethod
    def default_expiry(cls, value: int) -> int:
        """Non-positive expiry falls back to the 7 day default."""
        return value if value > 0 else 168

    @field_validator("cache_prefix")
    @classmethod
    def require_prefix(cls, value: str) -> str:
        # An empty prefix would let flush() wipe a shared store.
        if not value:
            raise ValueError("CACHE_PREFIX must not be empty.")
        return value

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """Refuse to start without a strong JWT secret, in every mode."""
        if not self.jwt_secret:
            raise ValueError(
                "JWT_SECRET is required. Set JWT_SECRET in your environment or .env file. "
                "Generate one with: python main.py keygen"
            )
        if len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        if not self.jwt_issuer:
            self.jwt_issuer = "gatehouse"
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Called once by the FastAPI lifespan; the resulting values are handed to
    stores and services as constructor arguments rather than read globally.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
