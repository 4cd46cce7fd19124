"""
Prometheus counters for authentication and request-protection events.

Scraped through ``GET /metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter

# Refresh rotation outcomes
AUTH_REFRESH_ROTATION = Counter(
    "auth_refresh_rotation_total",
    "Total number of refresh token rotations",
    ["result", "reason"],
)

# A rotated token presented again
AUTH_REPLAY_PROTECTION = Counter(
    "auth_replay_protection_total",
    "Total number of replay protection events",
    ["action", "reason"],
)

AUTH_LOGIN = Counter(
    "auth_login_total",
    "Total number of login attempts",
    ["result"],
)

CSRF_REJECTED = Counter(
    "csrf_rejected_total",
    "Total number of mutating requests rejected by the CSRF check",
    ["reason"],
)

AUTH_RATE_LIMIT = Counter(
    "auth_rate_limit_total",
    "Total number of rate limit events",
    ["operation", "result"],
)


def record_refresh_rotation(result: str, reason: str = "ok") -> None:
    AUTH_REFRESH_ROTATION.labels(result=result, reason=reason).inc()


def record_replay(action: str, reason: str) -> None:
    AUTH_REPLAY_PROTECTION.labels(action=action, reason=reason).inc()


def record_login(result: str) -> None:
    AUTH_LOGIN.labels(result=result).inc()


def record_csrf_rejection(missing: list[str]) -> None:
    reason = "missing_" + "_and_".join(missing) if missing else "mismatch"
    CSRF_REJECTED.labels(reason=reason).inc()


def record_rate_limit(operation: str, result: str) -> None:
    AUTH_RATE_LIMIT.labels(operation=operation, result=result).inc()
