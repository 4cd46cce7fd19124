"""FastAPI dependencies exposing the identity resolved by the gatekeeper."""

from __future__ import annotations

from fastapi import Depends, Request

from storefront.errors import AuthError, ForbiddenError
from storefront.guest_session import get_or_create
from storefront.owner import GuestOwner, OwnerKey, UserOwner
from storefront.security.principal import Principal, extract_access_token
from storefront.tokens import verify_access_token


def _resolve_principal(request: Request) -> Principal | None:
    if hasattr(request.state, "principal"):
        return request.state.principal
    # Mounted without the gatekeeper (unit tests, sub-apps)
    token = extract_access_token(request)
    if not token:
        return None
    try:
        principal = Principal.from_claims(verify_access_token(token))
    except AuthError:
        principal = None
    request.state.principal = principal
    return principal


async def get_optional_principal(request: Request) -> Principal | None:
    return _resolve_principal(request)


async def get_current_principal(request: Request) -> Principal:
    principal = _resolve_principal(request)
    if principal is None:
        raise AuthError()
    return principal


def require_role(role: str):
    """Dependency factory: 401 when unauthenticated, 403 on a role mismatch."""

    async def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role != role:
            raise ForbiddenError()
        return principal

    return _dep


def get_guest_session_id(request: Request) -> str:
    session_id = getattr(request.state, "guest_session_id", None)
    if session_id:
        return session_id
    return get_or_create(request).session_id


async def get_owner_key(
    request: Request,
    principal: Principal | None = Depends(get_optional_principal),
) -> OwnerKey:
    """Customers own their documents; everyone else is scoped to the guest session."""
    if principal is not None and principal.is_customer:
        return UserOwner(principal.user_id)
    return GuestOwner(get_guest_session_id(request))
