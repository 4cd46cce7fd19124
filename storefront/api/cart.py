from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from storefront.deps.user import get_optional_principal, get_owner_key
from storefront.errors import ForbiddenError
from storefront.owner import OwnerKey
from storefront.security.principal import Principal
from storefront.stores.carts import CartStore
from storefront.stores.products import ProductCatalog

router = APIRouter(prefix="/api/cart", tags=["Cart"])

carts = CartStore()
products = ProductCatalog()


class AddToCartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_id: str = Field(alias="productId", min_length=1)
    quantity: int = Field(default=1, ge=1)
    selected_color: str | None = Field(default=None, alias="selectedColor")
    selected_fragrance: str | None = Field(default=None, alias="selectedFragrance")


def _reject_admin(principal: Principal | None) -> None:
    if principal is not None and principal.is_admin:
        raise ForbiddenError("Only customers can use the cart")


@router.get("")
async def get_cart(owner: OwnerKey = Depends(get_owner_key)) -> dict:
    items = await carts.load(owner) or []
    return {"items": items, "count": sum(int(i.get("quantity", 0)) for i in items)}


@router.post("/add")
async def add_to_cart(
    body: AddToCartRequest,
    owner: OwnerKey = Depends(get_owner_key),
    principal: Principal | None = Depends(get_optional_principal),
) -> dict:
    _reject_admin(principal)
    product = await products.get(body.product_id)
    if product is None or not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found or unavailable")

    items = await carts.add_item(
        owner,
        product,
        body.quantity,
        selected_color=body.selected_color,
        selected_fragrance=body.selected_fragrance,
    )
    return {"success": True, "message": "Added to cart", "items": items}
