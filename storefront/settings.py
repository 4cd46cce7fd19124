import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Core service settings read from the environment (and an optional .env)."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore"
    )

    ENV: str = "dev"
    DATABASE_URL: str = "sqlite+aiosqlite:///./storefront.db"
    AUTO_CREATE_SCHEMA: bool = True

    LOG_LEVEL: str = "INFO"
    # "json" for production, "plain" for local development
    LOG_FORMAT: str = "json"

    COOKIE_SECURE: bool = False
    COOKIE_DOMAIN: str | None = None
    CSRF_COOKIE_TTL_S: int = 60 * 60 * 24
    GUEST_SESSION_TTL_S: int = 60 * 60 * 24 * 30
    # Comma-separated path prefixes that carry their own signature scheme
    CSRF_EXEMPT_PATHS: str = "/api/checkout/webhook,/api/webhooks/"

    # passlib scheme used for new hashes; verification accepts every listed scheme
    PASSWORD_SCHEME: str = "bcrypt"

    REFRESH_TOKEN_PEPPER: str | None = None
    # Reusing a rotated refresh token revokes every session of its owner
    REFRESH_REUSE_REVOKES_ALL: bool = True

    @field_validator("ENV", "LOG_FORMAT", "PASSWORD_SCHEME")
    @classmethod
    def _lower(cls, v: str) -> str:
        return (v or "").strip().lower()

    @property
    def is_dev(self) -> bool:
        return self.ENV in {"dev", "development", "local", "test", "ci"}

    @property
    def csrf_exempt_prefixes(self) -> list[str]:
        return [p.strip() for p in self.CSRF_EXEMPT_PATHS.split(",") if p.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
