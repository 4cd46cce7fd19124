"""
Guest session tracking for anonymous visitors.

Every visitor gets a UUID v4 in the HTTP-only ``guest-session-id`` cookie.
The id only scopes guest carts and wishlists. It has a fixed 30 day TTL and
is not renewed per request.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

from starlette.requests import Request
from starlette.responses import Response

from storefront.cookies import clear_guest_cookie, read_guest_cookie, set_guest_cookie

_UUID_V4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class GuestSession:
    session_id: str
    is_new: bool


def is_valid_session_id(value: str | None) -> bool:
    return bool(value) and bool(_UUID_V4_RE.match(value))


def new_session_id() -> str:
    return str(uuid.uuid4())


def get_or_create(request: Request) -> GuestSession:
    """Reuse a well-formed cookie; anything else is replaced by a fresh id."""
    existing = read_guest_cookie(request)
    if is_valid_session_id(existing):
        return GuestSession(session_id=existing, is_new=False)
    return GuestSession(session_id=new_session_id(), is_new=True)


def set_session_cookie(response: Response, session_id: str) -> None:
    set_guest_cookie(response, session_id)


def clear_session_cookie(response: Response) -> None:
    clear_guest_cookie(response)
