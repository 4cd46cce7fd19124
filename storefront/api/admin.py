from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from storefront.deps.user import require_role
from storefront.refresh_store import RefreshTokenStore
from storefront.security.principal import Principal
from storefront.stores.users import UserStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])

users = UserStore()
refresh_store = RefreshTokenStore()


@router.post("/users/{user_id}/revoke-sessions")
async def revoke_user_sessions(
    user_id: str, admin: Principal = Depends(require_role("admin"))
) -> dict:
    """Log a user out everywhere, e.g. after suspected token theft."""
    if await users.get_by_id(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    count = await refresh_store.revoke_all(user_id)
    logger.warning(
        "auth.admin_revoke_sessions",
        extra={"meta": {"admin_id": admin.user_id, "user_id": user_id, "count": count}},
    )
    return {"userId": user_id, "revokedTokens": count}
