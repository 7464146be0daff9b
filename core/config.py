"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AuditGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  Injection over globals: services receive the Settings instance in their
      constructor (SessionTokenIssuer(settings), LoginService(..., settings))
      so tests can hand in a Settings with a field blanked out.

Signing material:
  TOKEN_ISSUER, TOKEN_AUDIENCE and TOKEN_KEY may be empty at startup. A warning
  is logged, but the value is only enforced when a token is actually issued
  (auth/tokens.py) -- a login attempt against a half-configured deployment
  fails with a configuration error rather than the process refusing to boot.
  A TOKEN_KEY that IS set but shorter than 32 characters is rejected here.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("auditgate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auditgate.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `token_key` reads from TOKEN_KEY, `debug` reads from DEBUG.
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

    # ------------------------------------------------------------------
    # Session tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    token_issuer: str = ""
    token_audience: str = ""
    token_key: str = ""
    access_token_expiry_minutes: int = 60

    # ------------------------------------------------------------------
    # Licensing
    # ------------------------------------------------------------------

    license_default_months: int = 6

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_signing_material(self) -> "Settings":
        """Reject weak signing keys; warn about missing signing values.

        HS256 relies on key entropy, so a key shorter than 32 characters is a
        hard startup failure. Missing values only warn: the token issuer turns
        them into a configuration error on the first login.
        """
        if self.token_key and len(self.token_key) < 32:
            raise ValueError("TOKEN_KEY must be at least 32 characters.")
        missing = [
            name
            for name, value in (
                ("TOKEN_ISSUER", self.token_issuer),
                ("TOKEN_AUDIENCE", self.token_audience),
                ("TOKEN_KEY", self.token_key),
            )
            if not value.strip()
        ]
        if missing:
            logger.warning("Token signing configuration incomplete (missing: %s). Logins will fail.", ", ".join(missing))
        if self.access_token_expiry_minutes <= 0:
            raise ValueError("ACCESS_TOKEN_EXPIRY_MINUTES must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables, or construct Settings(...)
    directly and pass it to the service under test.
    """
    return Settings()
