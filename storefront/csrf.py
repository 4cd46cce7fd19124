"""
Double-submit cookie CSRF protection.

The token lives in the script-readable ``csrf-token`` cookie and must be
echoed in the ``X-CSRF-Token`` header on every mutating request.
"""

from __future__ import annotations

import hmac
import logging
import secrets

from starlette.requests import Request

from storefront import metrics
from storefront.cookies import read_csrf_cookie
from storefront.errors import CSRFError
from storefront.settings import get_settings

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
TOKEN_BYTES = 32
TOKEN_LENGTH = TOKEN_BYTES * 2
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def generate_csrf_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def verify_csrf_tokens(header_token: str | None, cookie_token: str | None) -> bool:
    if not header_token or not cookie_token:
        return False
    # Length mismatch fails before any comparison
    if len(header_token) != TOKEN_LENGTH or len(cookie_token) != TOKEN_LENGTH:
        return False
    return hmac.compare_digest(header_token.encode(), cookie_token.encode())


class CSRFGuard:
    def __init__(self, exempt_prefixes: list[str] | None = None):
        self._exempt = exempt_prefixes

    @property
    def exempt_prefixes(self) -> list[str]:
        if self._exempt is not None:
            return self._exempt
        return get_settings().csrf_exempt_prefixes

    def is_exempt(self, request: Request) -> bool:
        if request.method.upper() in SAFE_METHODS:
            return True
        path = request.url.path
        # Payment webhooks authenticate with their own signature scheme
        return any(path.startswith(prefix) for prefix in self.exempt_prefixes)

    def verify(self, request: Request) -> None:
        """Raise CSRFError unless the request is exempt or carries a matching pair."""
        if self.is_exempt(request):
            return
        header_token = request.headers.get(CSRF_HEADER)
        cookie_token = read_csrf_cookie(request)
        if not verify_csrf_tokens(header_token, cookie_token):
            missing = [
                name
                for name, value in (("header", header_token), ("cookie", cookie_token))
                if not value
            ]
            logger.warning(
                "csrf.rejected",
                extra={"meta": {"path": request.url.path, "method": request.method, "missing": missing}},
            )
            metrics.record_csrf_rejection(missing)
            raise CSRFError()
