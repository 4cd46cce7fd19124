"""
Guest-to-user reconciliation.

Runs once, synchronously, at the end of a successful login or registration
and folds the guest session's cart, wishlist and past guest orders into the
user's identity. Each step is isolated: a failure is logged with the user id,
session id and operation, and the login still succeeds.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from storefront.credentials import normalize_email
from storefront.errors import ReconciliationError
from storefront.guest_session import is_valid_session_id
from storefront.owner import GuestOwner, UserOwner
from storefront.stores.carts import CartStore, line_key
from storefront.stores.orders import OrderStore
from storefront.stores.products import ProductCatalog
from storefront.stores.wishlists import WishlistStore, ordered_union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CartMergeResult:
    merged: bool = False
    rekeyed: bool = False
    lines: int = 0
    dropped: int = 0


@dataclass
class ReconciliationReport:
    user_id: str
    session_id: str | None
    cart: CartMergeResult = field(default_factory=CartMergeResult)
    wishlist_merged: bool = False
    orders_associated: int = 0
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_meta(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "session_id": self.session_id,
            "cart_merged": self.cart.merged,
            "cart_rekeyed": self.cart.rekeyed,
            "cart_dropped": self.cart.dropped,
            "wishlist_merged": self.wishlist_merged,
            "orders_associated": self.orders_associated,
            "failed": list(self.failed),
        }


class ReconciliationEngine:
    def __init__(
        self,
        carts: CartStore | None = None,
        wishlists: WishlistStore | None = None,
        orders: OrderStore | None = None,
        products: ProductCatalog | None = None,
    ):
        self.carts = carts or CartStore()
        self.wishlists = wishlists or WishlistStore()
        self.orders = orders or OrderStore()
        self.products = products or ProductCatalog()

    async def _isolated(
        self,
        operation: str,
        user_id: str,
        session_id: str | None,
        step: Callable[[], Awaitable[T]],
        default: T,
        failed: list[str] | None = None,
    ) -> T:
        try:
            try:
                return await step()
            except Exception as e:
                raise ReconciliationError(operation) from e
        except ReconciliationError as err:
            logger.error(
                "reconcile.step_failed",
                exc_info=err,
                extra={
                    "meta": {
                        "user_id": user_id,
                        "session_id": session_id,
                        "operation": err.operation,
                        "error_type": type(err.__cause__).__name__,
                    }
                },
            )
            if failed is not None:
                failed.append(operation)
            return default

    # ---------------------------------------------------------------- cart

    async def _merge_cart(self, user_id: str, session_id: str) -> CartMergeResult:
        guest = GuestOwner(session_id)
        user = UserOwner(user_id)

        guest_items = await self.carts.load(guest)
        if not guest_items:
            return CartMergeResult()

        user_items = await self.carts.load(user)
        if user_items is None:
            await self.carts.rekey(guest, user)
            return CartMergeResult(merged=True, rekeyed=True, lines=len(guest_items))

        catalog = await self.products.get_many(str(i.get("productId")) for i in guest_items)
        merged = [dict(item) for item in user_items]
        positions = {line_key(item): i for i, item in enumerate(merged)}
        dropped = 0

        for guest_item in guest_items:
            product = catalog.get(str(guest_item.get("productId")))
            if product is None or not product.is_active:
                dropped += 1
                continue

            key = line_key(guest_item)
            if key in positions:
                line = merged[positions[key]]
                wanted = int(line.get("quantity", 0)) + int(guest_item.get("quantity", 0))
                line["quantity"] = min(wanted, product.stock)
                line["price"] = product.price
            else:
                positions[key] = len(merged)
                merged.append({**guest_item, "price": product.price})

        # Clamped lines are kept even at zero stock
        await self.carts.replace_and_delete(user, merged, guest)
        return CartMergeResult(merged=True, lines=len(merged), dropped=dropped)

    async def merge_cart(self, user_id: str, session_id: str) -> CartMergeResult:
        """Fold the guest cart into the user's cart; never raises."""
        return await self._isolated(
            "merge_cart",
            user_id,
            session_id,
            lambda: self._merge_cart(user_id, session_id),
            CartMergeResult(),
        )

    # ------------------------------------------------------------ wishlist

    async def _merge_wishlist(self, user_id: str, session_id: str) -> bool:
        guest = GuestOwner(session_id)
        user = UserOwner(user_id)

        guest_ids = await self.wishlists.load(guest)
        if not guest_ids:
            return False

        user_ids = await self.wishlists.load(user)
        if user_ids is None:
            await self.wishlists.rekey(guest, user)
            return True

        await self.wishlists.replace_and_delete(user, ordered_union(user_ids, guest_ids), guest)
        return True

    async def merge_wishlist(self, user_id: str, session_id: str) -> bool:
        """Union the guest wishlist into the user's; never raises."""
        return await self._isolated(
            "merge_wishlist",
            user_id,
            session_id,
            lambda: self._merge_wishlist(user_id, session_id),
            False,
        )

    # -------------------------------------------------------------- orders

    async def associate_guest_orders(
        self, user_id: str, email: str, session_id: str | None = None
    ) -> int:
        """Claim unowned guest orders placed with ``email``; returns how many."""
        return await self._isolated(
            "associate_guest_orders",
            user_id,
            session_id,
            lambda: self.orders.associate_guest_orders(user_id, normalize_email(email)),
            0,
        )

    # ----------------------------------------------------------------- all

    async def reconcile(
        self, user_id: str, session_id: str | None, email: str
    ) -> ReconciliationReport:
        report = ReconciliationReport(user_id=user_id, session_id=session_id)

        if session_id and is_valid_session_id(session_id):
            report.cart = await self._isolated(
                "merge_cart",
                user_id,
                session_id,
                lambda: self._merge_cart(user_id, session_id),
                CartMergeResult(),
                report.failed,
            )
            report.wishlist_merged = await self._isolated(
                "merge_wishlist",
                user_id,
                session_id,
                lambda: self._merge_wishlist(user_id, session_id),
                False,
                report.failed,
            )

        report.orders_associated = await self._isolated(
            "associate_guest_orders",
            user_id,
            session_id,
            lambda: self.orders.associate_guest_orders(user_id, normalize_email(email)),
            0,
            report.failed,
        )

        logger.info("reconcile.completed", extra={"meta": report.as_meta()})
        return report
