"""
Read-side view of the product catalog consumed by cart and wishlist flows.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select

from storefront.db.core import get_async_session
from storefront.db.models import Product


@dataclass(frozen=True)
class ProductInfo:
    id: str
    name: str
    price: float
    stock: int
    is_active: bool


def _to_info(row: Product) -> ProductInfo:
    return ProductInfo(
        id=row.id,
        name=row.name,
        price=float(row.price),
        stock=int(row.stock or 0),
        is_active=bool(row.is_active),
    )


class ProductCatalog:
    async def get(self, product_id: str) -> ProductInfo | None:
        async with get_async_session() as session:
            row = await session.get(Product, product_id)
            return _to_info(row) if row else None

    async def get_many(self, product_ids: Iterable[str]) -> dict[str, ProductInfo]:
        """Fetch several products in one query, keyed by id. Unknown ids are absent."""
        ids = list({str(p) for p in product_ids})
        if not ids:
            return {}
        async with get_async_session() as session:
            result = await session.execute(select(Product).where(Product.id.in_(ids)))
            return {row.id: _to_info(row) for row in result.scalars()}

    async def add(
        self, *, name: str, price: float, stock: int = 0, is_active: bool = True
    ) -> ProductInfo:
        """Insert a catalog entry (seeding and tests)."""
        row = Product(name=name, price=price, stock=stock, is_active=is_active)
        async with get_async_session() as session:
            session.add(row)
            await session.commit()
        return _to_info(row)
