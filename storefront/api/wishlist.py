from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from storefront.deps.user import get_optional_principal, get_owner_key
from storefront.errors import ForbiddenError
from storefront.owner import OwnerKey
from storefront.security.principal import Principal
from storefront.stores.products import ProductCatalog
from storefront.stores.wishlists import WishlistStore

router = APIRouter(prefix="/api/wishlist", tags=["Wishlist"])

wishlists = WishlistStore()
products = ProductCatalog()


class WishlistItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_id: str = Field(alias="productId", min_length=1)


def _reject_admin(principal: Principal | None) -> None:
    if principal is not None and principal.is_admin:
        raise ForbiddenError("Only customers can use the wishlist")


@router.get("")
async def get_wishlist(owner: OwnerKey = Depends(get_owner_key)) -> dict:
    ids = await wishlists.load(owner) or []
    if not ids:
        return {"productIds": [], "products": []}
    catalog = await products.get_many(ids)
    available = [
        {"id": p.id, "name": p.name, "price": p.price, "stock": p.stock}
        for pid in ids
        if (p := catalog.get(pid)) is not None and p.is_active
    ]
    return {"productIds": ids, "products": available}


@router.post("")
async def add_to_wishlist(
    body: WishlistItemRequest,
    owner: OwnerKey = Depends(get_owner_key),
    principal: Principal | None = Depends(get_optional_principal),
) -> dict:
    _reject_admin(principal)
    product = await products.get(body.product_id)
    if product is None or not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found or unavailable")
    ids = await wishlists.add(owner, product.id)
    return {"success": True, "productIds": ids}


@router.delete("")
async def remove_from_wishlist(
    body: WishlistItemRequest,
    owner: OwnerKey = Depends(get_owner_key),
    principal: Principal | None = Depends(get_optional_principal),
) -> dict:
    _reject_admin(principal)
    ids = await wishlists.remove(owner, body.product_id)
    return {"success": True, "productIds": ids}
