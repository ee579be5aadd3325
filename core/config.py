"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AccessGate happen here. No module should
call os.getenv() or os.environ.get() directly. Composition roots (the FastAPI
lifespan in api/main.py and the CLI in main.py) call get_settings() once and
hand the resulting values to the components they build. Components never
look settings up on their own.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Enforces the signing secret policy once all
      fields are resolved.

Security notes:
  The signing secret has no fallback. A missing JWT_SECRET is a hard startup
  failure in every mode -- a process that silently generated its own key would
  issue tokens no other replica could verify and would invalidate every
  session on restart.

  JWT_SECRET shorter than 32 chars is rejected outright. HMAC-SHA256 relies on
  key entropy; a short key weakens every token.

  The token TTL is NOT a setting. It is fixed at 24 hours (TOKEN_TTL_SECONDS).

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, access/, or store/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigurationError

logger = logging.getLogger("accessgate.config")

TOKEN_TTL_SECONDS = 60 * 60 * 24  # 24 hours, fixed

_MIN_SECRET_LENGTH = 32

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'store' / 'accessgate.db'}"


class HttpSettings(BaseSettings):
    """HTTP middleware options: CORS origins and trusted Host headers.

    Split out from Settings because Starlette middleware must be installed
    when the app object is created, before the lifespan runs. Reading these
    two lists never requires JWT_SECRET.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]


class Settings(HttpSettings):
    """Application settings loaded from environment variables and .env file.

    Every field except jwt_secret has a default so a local SQLite deployment
    needs exactly one variable. Environment variable names are the uppercased
    field names: JWT_SECRET, DATABASE_URL, DEBUG, LOG_LEVEL, CORS_ORIGINS,
    ALLOWED_HOSTS.
    """

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    # Empty string is the sentinel for "not configured"; the validator below
    # turns it into a startup failure.
    jwt_secret: str = ""

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # Any SQLAlchemy URL. SQLite for local runs, PostgreSQL in production
    # (e.g. postgresql+psycopg://user:pw@db/accessgate).
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """Refuse to build settings without a usable signing secret."""
        if not self.jwt_secret:
            raise ValueError(
                "JWT_SECRET is required. Set JWT_SECRET in your environment or .env file. "
                "Generate one with: python main.py generate-secret"
            )
        if len(self.jwt_secret) < _MIN_SECRET_LENGTH:
            raise ValueError(f"JWT_SECRET must be at least {_MIN_SECRET_LENGTH} characters.")
        return self


def load_settings(**overrides) -> Settings:
    """Build a Settings instance, translating validation failures into ConfigurationError.

    Keyword overrides take precedence over the environment; tests use them to
    build isolated settings without touching os.environ.
    """
    try:
        return Settings(**overrides)
    except PydanticValidationError as exc:
        messages = "; ".join(err["msg"] for err in exc.errors())
        logger.error("Configuration invalid: %s", messages)
        raise ConfigurationError(messages) from exc


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Raises ConfigurationError when JWT_SECRET is missing or too short, which
    aborts the FastAPI lifespan and the CLI before anything else happens.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return load_settings()
