# storefront/rate_limit.py
"""
In-process fixed-window rate limiter.

Single-instance only: a multi-instance deployment swaps ``RateLimiter`` for a
shared atomic counter with the same ``check`` signature.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from starlette.requests import Request

from storefront.settings_rate import rate_limit_settings

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # epoch milliseconds

    def headers(self, limit: int) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": datetime.fromtimestamp(self.reset_at / 1000, UTC).isoformat(),
        }


@dataclass
class _Entry:
    count: int
    reset_at: int


class RateLimiter:
    def __init__(self, clock: Callable[[], int] = _now_ms):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def check(self, key: str, limit: int, window_ms: int) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now > entry.reset_at:
                entry = _Entry(count=1, reset_at=now + window_ms)
                self._entries[key] = entry
                return RateLimitResult(True, limit - 1, entry.reset_at)

            if entry.count >= limit:
                return RateLimitResult(False, 0, entry.reset_at)

            entry.count += 1
            return RateLimitResult(True, limit - entry.count, entry.reset_at)

    def sweep(self) -> int:
        """Drop entries whose window has lapsed; returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if now > e.reset_at]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Process-wide limiter shared by the API routes
limiter = RateLimiter()


def client_ip(request: Request) -> str:
    """Best-effort caller address, proxy headers first."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def sweep_forever(rl: RateLimiter | None = None, interval_s: float | None = None) -> None:
    """Best-effort maintenance loop; cancelled by the application lifespan."""
    rl = rl or limiter
    interval = interval_s or rate_limit_settings.sweep_interval_s
    while True:
        await asyncio.sleep(interval)
        try:
            removed = rl.sweep()
        except Exception:
            logger.exception("rate_limit.sweep_failed")
            continue
        if removed:
            logger.debug("rate_limit.swept", extra={"meta": {"removed": removed}})
