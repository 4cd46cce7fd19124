"""
Cart documents keyed by owner.

Items are JSON objects:
``{productId, quantity, price, selectedColor?, selectedFragrance?, addedAt}``.
Two items are the same line when product, colour and fragrance all match,
absent values included.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from storefront.db.models import Cart
from storefront.errors import ValidationFailed
from storefront.owner import OwnerKey
from storefront.stores.base import OwnedDocumentStore
from storefront.stores.products import ProductInfo

LineKey = tuple[str, str | None, str | None]


def _opt(value: Any) -> str | None:
    # Empty selections are the same as no selection
    return str(value) if value else None


def line_key(item: dict[str, Any]) -> LineKey:
    return (
        str(item.get("productId")),
        _opt(item.get("selectedColor")),
        _opt(item.get("selectedFragrance")),
    )


def make_item(
    product: ProductInfo,
    quantity: int,
    selected_color: str | None = None,
    selected_fragrance: str | None = None,
) -> dict[str, Any]:
    return {
        "productId": product.id,
        "quantity": int(quantity),
        "price": product.price,
        "selectedColor": _opt(selected_color),
        "selectedFragrance": _opt(selected_fragrance),
        "addedAt": datetime.now(UTC).isoformat(),
    }


class CartStore(OwnedDocumentStore):
    model = Cart
    payload_field = "items"

    async def add_item(
        self,
        owner: OwnerKey,
        product: ProductInfo,
        quantity: int,
        selected_color: str | None = None,
        selected_fragrance: str | None = None,
    ) -> list[dict[str, Any]]:
        """Add a line or grow the matching one. Raises ValidationFailed past stock."""
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1")
        if product.stock < quantity:
            raise ValidationFailed("Insufficient stock")

        new_item = make_item(product, quantity, selected_color, selected_fragrance)
        items = await self.load(owner) or []
        key = line_key(new_item)
        for i, item in enumerate(items):
            if line_key(item) == key:
                merged = int(item.get("quantity", 0)) + int(quantity)
                if product.stock < merged:
                    raise ValidationFailed("Insufficient stock")
                items[i] = {**item, "quantity": merged}
                break
        else:
            items.append(new_item)

        await self.save(owner, items)
        return items
