"""Response shaping shared by the API routers."""

from __future__ import annotations

from typing import Any

from storefront.db.models import User
from storefront.tokens import TokenPair


def token_response(pair: TokenPair, **extra: Any) -> dict[str, Any]:
    """Client token payload; ``token`` is the legacy alias of ``accessToken``."""
    body = {
        "accessToken": pair.access_token,
        "refreshToken": pair.refresh_token,
        "token": pair.access_token,
        "expiresIn": pair.expires_in,
    }
    body.update(extra)
    return body


def user_public(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "phoneNumber": user.phone_number,
        "joinPromotions": bool(user.join_promotions),
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }
