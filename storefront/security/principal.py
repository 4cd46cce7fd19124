from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import Request

from storefront.cookies import read_access_cookie
from storefront.tokens import AccessClaims


@dataclass(frozen=True)
class Principal:
    """Authenticated identity attached to ``request.state.principal``."""

    user_id: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_customer(self) -> bool:
        return self.role == "customer"

    @classmethod
    def from_claims(cls, claims: AccessClaims) -> Principal:
        return cls(user_id=claims.user_id, email=claims.email, role=claims.role)


def extract_access_token(request: Request) -> str | None:
    """Bearer header first, then the ``token`` cookie."""
    parts = request.headers.get("authorization", "").split(None, 1)
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
        return parts[1].strip()
    return read_access_cookie(request)
