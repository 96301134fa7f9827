"""
core/config.py -- CivicWatch settings, read once from the environment.

Every environment lookup in the service goes through get_settings(); nothing
else touches os.environ. Field names are the lower-case env var names
(DATABASE_URL -> database_url, AUTH_DETAILED_ERRORS -> auth_detailed_errors),
and a local .env file is honoured when present.

get_settings() is wrapped in lru_cache, so the environment is parsed on the
first call and the same Settings object is shared afterwards. Tests that
need different values build Settings(...) directly or patch get_settings
in the module under test.

Signing key policy, enforced by validate_secret_key():
  [M6] Keys under 32 characters are refused. The JWT signature and the HMAC
       over stored refresh/session secrets are only as strong as this key.

  [M7] DEBUG=true with no key: a throwaway key is generated and a warning is
       logged. Anything else with no key: startup fails.

  Neither SECRET_KEY nor DATABASE_URL is ever written to a log or a response.

Layer rule: core/ imports nothing from api/, auth/, or reports/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("civicwatch.config")


class Settings(BaseSettings):
    """Service configuration. Every field has a default except a usable SECRET_KEY
    outside debug mode; validate_secret_key() settles that one."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; after validation it is always a real key.
    secret_key: str = ""
    database_url: str = "sqlite:///civicwatch.db"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # False: every credential failure is the same 401 (no account enumeration).
    # True: pending / disabled organizations get a specific 403 message.
    auth_detailed_errors: bool = False

    # ------------------------------------------------------------------
    # Breach corpus (k-anonymity range API)
    # ------------------------------------------------------------------

    breach_api_url: str = "https://api.pwnedpasswords.com/range/"
    breach_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    cors_allow_origins: list[str] = ["*"]
    allowed_hosts: list[str] = ["*"]
    # Only honour X-Forwarded-For / X-Real-IP when a reverse proxy sets them.
    trust_proxy_headers: bool = False

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Generate a key in debug mode, refuse to start without one otherwise [M6][M7].

        A generated key dies with the process, so every token issued under it
        is invalid after a restart.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("DEBUG is on and SECRET_KEY is unset; signing with a generated key")
            else:
                raise ValueError(
                    "SECRET_KEY is required unless DEBUG=true. "
                    "Set it in the environment or in .env (at least 32 characters)."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Parse the environment once and return the shared Settings."""
    return Settings()
