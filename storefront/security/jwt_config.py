import os
import re
from dataclasses import dataclass

from storefront.errors import ConfigurationError

_PLACEHOLDER_PAT = re.compile(r"your[-_ ]secure[-_ ]jwt[-_ ]secret|placeholder|changeme", re.I)
_SUPPORTED_ALGS = {"HS256", "HS384", "HS512"}


@dataclass(frozen=True)
class JWTConfig:
    alg: str
    secret: str
    issuer: str | None
    audience: str | None
    access_ttl_min: int
    refresh_ttl_days: int
    clock_skew_s: int


def _require_strong_secret(secret: str, *, allow_dev: bool) -> None:
    # Dev and test runs may use short secrets
    if allow_dev:
        return
    if len(secret) < 32:
        raise ConfigurationError("JWT_SECRET too short (<32 chars).")
    if _PLACEHOLDER_PAT.search(secret):
        raise ConfigurationError("JWT_SECRET contains placeholder text; replace immediately.")
    if re.fullmatch(r"(dev|staging|prod|test|secret|token)[-_]?\d*", secret, re.I):
        raise ConfigurationError("JWT_SECRET looks like a low-entropy label; use a random value.")


def _is_dev_env() -> bool:
    env = os.getenv("ENV", "dev").strip().lower()
    return env in {"dev", "development", "local", "test", "ci"}


def get_jwt_config(*, allow_dev_weak: bool | None = None) -> JWTConfig:
    """Read signing configuration from the environment on every call.

    Raises ConfigurationError when no secret is configured or, outside dev/test,
    when the secret is weak.
    """
    if allow_dev_weak is None:
        allow_dev_weak = _is_dev_env()

    alg = os.getenv("JWT_ALG", "HS256").strip().upper() or "HS256"
    if alg not in _SUPPORTED_ALGS:
        raise ConfigurationError(f"Unsupported JWT_ALG {alg!r}")

    secret = os.getenv("JWT_SECRET", "").strip()
    if not secret:
        raise ConfigurationError("JWT_SECRET environment variable is required")
    _require_strong_secret(secret, allow_dev=allow_dev_weak)

    try:
        access_ttl_min = int(os.getenv("JWT_EXPIRE_MINUTES", "15"))
        refresh_ttl_days = int(os.getenv("JWT_REFRESH_EXPIRE_DAYS", "7"))
        clock_skew_s = int(os.getenv("JWT_CLOCK_SKEW_S", "30"))
    except ValueError as e:
        raise ConfigurationError(f"Invalid JWT TTL configuration: {e}") from e

    return JWTConfig(
        alg=alg,
        secret=secret,
        issuer=os.getenv("JWT_ISS") or None,
        audience=os.getenv("JWT_AUD") or None,
        access_ttl_min=access_ttl_min,
        refresh_ttl_days=refresh_ttl_days,
        clock_skew_s=clock_skew_s,
    )
