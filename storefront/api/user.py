from __future__ import annotations

from fastapi import APIRouter, Depends

from storefront.api.responses import user_public
from storefront.deps.user import get_current_principal
from storefront.errors import AuthError
from storefront.security.principal import Principal
from storefront.stores.users import UserStore

router = APIRouter(prefix="/api/user", tags=["User"])

users = UserStore()


@router.get("/me")
async def me(principal: Principal = Depends(get_current_principal)) -> dict:
    user = await users.get_by_id(principal.user_id)
    if user is None:
        # Token outlived its account
        raise AuthError()
    return {"user": user_public(user)}
