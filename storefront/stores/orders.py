"""
Order collaborator: only the identity-link side of orders lives here.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update

from storefront.db.core import get_async_session
from storefront.db.models import Order

logger = logging.getLogger(__name__)


class OrderStore:
    async def create_guest_order(
        self, guest_info: dict[str, Any], total: float = 0.0, status: str = "pending"
    ) -> Order:
        """Persist a guest checkout order; ``guest_info["email"]`` is indexed normalized."""
        email = str(guest_info.get("email") or "").strip().lower()
        if not email:
            raise ValueError("guest orders require guest_info.email")
        order = Order(
            guest_email=email,
            guest_info={**guest_info, "email": email},
            total=total,
            status=status,
        )
        async with get_async_session() as session:
            session.add(order)
            await session.commit()
        return order

    async def create_customer_order(
        self, customer_id: str, total: float = 0.0, status: str = "pending"
    ) -> Order:
        order = Order(customer_id=customer_id, total=total, status=status)
        async with get_async_session() as session:
            session.add(order)
            await session.commit()
        return order

    async def get(self, order_id: str) -> Order | None:
        async with get_async_session() as session:
            return await session.get(Order, order_id)

    async def list_for_customer(self, customer_id: str) -> list[Order]:
        async with get_async_session() as session:
            result = await session.execute(
                select(Order)
                .where(Order.customer_id == customer_id)
                .order_by(Order.created_at)
            )
            return list(result.scalars())

    async def associate_guest_orders(self, user_id: str, email: str) -> int:
        """Convert every unclaimed guest order for ``email`` into a customer order.

        One bulk update; re-running it converts nothing.
        """
        async with get_async_session() as session:
            result = await session.execute(
                update(Order)
                .where(Order.guest_email == email, Order.customer_id.is_(None))
                .values(
                    customer_id=user_id,
                    guest_email=None,
                    guest_info=None,
                    updated_at=datetime.now(UTC),
                )
            )
            await session.commit()
            count = result.rowcount or 0
        if count:
            logger.info("order.guest_orders_associated", extra={"meta": {"user_id": user_id, "count": count}})
        return count
