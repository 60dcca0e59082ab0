"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for GymCoach happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Enforces the signing secret policy and
      resolves the cookie Secure flag from DEBUG.

Security notes:
  SECRET_KEY is mandatory in every mode. There is no auto-generated fallback:
  a process without a real signing secret must refuse to serve rather than
  issue tokens nobody can rely on.

  Known placeholder values (the ones that ship in sample .env files) are
  rejected even when long enough. Keys shorter than 32 chars are rejected.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or identity/.
"""

import logging
from functools import lru_cache

from pydantic import ValidationError as SettingsValidationError
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigurationError

logger = logging.getLogger("gymcoach.config")

MIN_SECRET_LENGTH = 32

# Lowercased. Compared after strip().
PLACEHOLDER_SECRETS = frozenset(
    {
        "dev_secret_change",
        "changeme",
        "change-me",
        "change_me",
        "secret",
        "your-secret-key",
        "your_secret_key",
        "replace-me-with-a-long-random-string",
    }
)

SEVEN_DAYS = 7 * 24 * 60 * 60


def check_signing_secret(secret: str | None) -> str:
    """Return the secret unchanged, or raise ConfigurationError if it is unusable."""
    if not secret or not secret.strip():
        raise ConfigurationError(
            "SECRET_KEY is required. Set SECRET_KEY in your environment or .env file."
        )
    if secret.strip().lower() in PLACEHOLDER_SECRETS:
        raise ConfigurationError("SECRET_KEY is a known placeholder value. Generate a random key.")
    if len(secret) < MIN_SECRET_LENGTH:
        raise ConfigurationError(f"SECRET_KEY must be at least {MIN_SECRET_LENGTH} characters.")
    return secret


def split_csv(value: str) -> list[str]:
    """Split a comma-separated env value, dropping blanks."""
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Everything except SECRET_KEY has a default so local runs only need one
    variable. The model_validator enforces the secret policy at startup.
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
    secret_key: str = ""
    database_url: str = ""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # None means "derive from DEBUG": Secure cookies everywhere except debug.
    secure_cookies: bool | None = None
    token_expire_seconds: int = SEVEN_DAYS
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    frontend_origin: str = "http://localhost:5500"
    allowed_hosts: str = "localhost,127.0.0.1,*.localhost"

    # ------------------------------------------------------------------
    # Rate limiting (limits library syntax)
    # ------------------------------------------------------------------

    global_rate_limit: str = "100 per 15 minutes"
    api_rate_limit: str = "20/minute"
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Text generation provider (optional -- empty key disables /chat etc.)
    # ------------------------------------------------------------------

    gemini_api_key: str = ""
    generation_model: str = "gemini-2.0-flash"
    generation_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    generation_timeout_seconds: float = 30.0

    # ------------------------------------------------------------------
    # Hosted identity provider (optional)
    # ------------------------------------------------------------------

    identity_api_key: str = ""
    identity_base_url: str = "https://identitytoolkit.googleapis.com/v1"
    identity_timeout_seconds: float = 10.0
    initial_auth_token: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Reject missing or placeholder secrets; resolve secure_cookies."""
        try:
            check_signing_secret(self.secret_key)
        except ConfigurationError as exc:
            # pydantic only wraps ValueError into its own ValidationError
            raise ValueError(str(exc)) from exc
        if self.secure_cookies is None:
            self.secure_cookies = not self.debug
        if self.bcrypt_rounds < 4 or self.bcrypt_rounds > 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        return self

    @property
    def allowed_origins(self) -> list[str]:
        return split_csv(self.frontend_origin)

    @property
    def trusted_hosts(self) -> list[str]:
        return split_csv(self.allowed_hosts)


def load_settings(**overrides) -> Settings:
    """Build a Settings instance, converting validation failures to ConfigurationError."""
    try:
        return Settings(**overrides)
    except SettingsValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    settings = load_settings()
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY not set -- generation endpoints will return 503")
    return settings
