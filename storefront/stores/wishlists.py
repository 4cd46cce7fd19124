"""
Wishlist documents keyed by owner. ``product_ids`` is an ordered list with set
semantics: no id appears twice.
"""

from __future__ import annotations

from collections.abc import Iterable

from storefront.db.models import Wishlist
from storefront.owner import OwnerKey
from storefront.stores.base import OwnedDocumentStore


def ordered_union(*groups: Iterable[str]) -> list[str]:
    """Union preserving first-seen order."""
    seen: dict[str, None] = {}
    for group in groups:
        for pid in group:
            seen.setdefault(str(pid), None)
    return list(seen)


class WishlistStore(OwnedDocumentStore):
    model = Wishlist
    payload_field = "product_ids"

    async def add(self, owner: OwnerKey, product_id: str) -> list[str]:
        ids = await self.load(owner) or []
        if product_id in ids:
            return ids
        ids = ordered_union(ids, [product_id])
        await self.save(owner, ids)
        return ids

    async def remove(self, owner: OwnerKey, product_id: str) -> list[str]:
        ids = await self.load(owner)
        if not ids or product_id not in ids:
            return ids or []
        ids = [pid for pid in ids if pid != product_id]
        await self.save(owner, ids)
        return ids
