"""
Cookie management facade.

All Set-Cookie operations for auth and auth-adjacent state go through this
module; nothing else calls ``response.set_cookie()`` directly.

- ``token``: access token carrier, HTTP-only
- ``guest-session-id``: anonymous visitor id, HTTP-only, 30 days
- ``csrf-token``: double-submit token, readable by script, 24 hours, strict
"""

from __future__ import annotations

import logging

from starlette.requests import Request
from starlette.responses import Response

from storefront.settings import get_settings

log = logging.getLogger(__name__)

ACCESS_COOKIE = "token"
GUEST_SESSION_COOKIE = "guest-session-id"
CSRF_COOKIE = "csrf-token"


def _set(
    resp: Response,
    name: str,
    value: str,
    *,
    max_age: int,
    httponly: bool,
    samesite: str,
) -> None:
    settings = get_settings()
    resp.set_cookie(
        key=name,
        value=value,
        max_age=max_age,
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE,
        httponly=httponly,
        samesite=samesite,
    )


def _clear(resp: Response, name: str, *, httponly: bool, samesite: str) -> None:
    settings = get_settings()
    resp.delete_cookie(
        key=name,
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE,
        httponly=httponly,
        samesite=samesite,
    )


def set_access_cookie(resp: Response, token: str, max_age: int) -> None:
    _set(resp, ACCESS_COOKIE, token, max_age=max_age, httponly=True, samesite="lax")


def clear_access_cookie(resp: Response) -> None:
    _clear(resp, ACCESS_COOKIE, httponly=True, samesite="lax")


def set_guest_cookie(resp: Response, session_id: str) -> None:
    ttl = get_settings().GUEST_SESSION_TTL_S
    _set(resp, GUEST_SESSION_COOKIE, session_id, max_age=ttl, httponly=True, samesite="lax")


def clear_guest_cookie(resp: Response) -> None:
    _clear(resp, GUEST_SESSION_COOKIE, httponly=True, samesite="lax")


def set_csrf_cookie(resp: Response, token: str) -> None:
    ttl = get_settings().CSRF_COOKIE_TTL_S
    _set(resp, CSRF_COOKIE, token, max_age=ttl, httponly=False, samesite="strict")


def read_access_cookie(request: Request) -> str | None:
    return request.cookies.get(ACCESS_COOKIE) or None


def read_guest_cookie(request: Request) -> str | None:
    return request.cookies.get(GUEST_SESSION_COOKIE) or None


def read_csrf_cookie(request: Request) -> str | None:
    return request.cookies.get(CSRF_COOKIE) or None
