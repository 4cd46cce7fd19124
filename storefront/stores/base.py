"""
Shared persistence for documents owned by a user or a guest session.

Carts and wishlists are both "one row per owner with a JSON payload"; the
subclasses only name the model and the payload column.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, ClassVar

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.core import get_async_session
from storefront.owner import OwnerKey, owner_clause, owner_columns

logger = logging.getLogger(__name__)


class OwnedDocumentStore:
    model: ClassVar[Any]
    payload_field: ClassVar[str]

    async def load(self, owner: OwnerKey) -> list | None:
        """Payload of the owner's document, or None when it has no document."""
        async with get_async_session() as session:
            result = await session.execute(
                select(getattr(self.model, self.payload_field)).where(
                    owner_clause(self.model, owner)
                )
            )
            row = result.first()
            return list(row[0] or []) if row else None

    async def save(self, owner: OwnerKey, payload: list) -> None:
        async with get_async_session() as session:
            await self._upsert(session, owner, payload)
            await session.commit()

    async def rekey(self, source: OwnerKey, target: OwnerKey) -> bool:
        """Move the source document to the target owner in a single update.

        Fails with IntegrityError if the target already owns a document.
        """
        now = datetime.now(UTC)
        async with get_async_session() as session:
            result = await session.execute(
                update(self.model)
                .where(owner_clause(self.model, source))
                .values(**owner_columns(target), updated_at=now)
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def replace_and_delete(
        self, target: OwnerKey, payload: list, source: OwnerKey
    ) -> None:
        """Write the target payload and drop the source document atomically."""
        async with get_async_session() as session:
            await self._upsert(session, target, payload)
            await session.execute(delete(self.model).where(owner_clause(self.model, source)))
            await session.commit()

    async def _upsert(self, session: AsyncSession, owner: OwnerKey, payload: list) -> None:
        now = datetime.now(UTC)
        result = await session.execute(
            update(self.model)
            .where(owner_clause(self.model, owner))
            .values(**{self.payload_field: payload}, updated_at=now)
        )
        if (result.rowcount or 0) == 0:
            session.add(
                self.model(
                    **owner_columns(owner),
                    **{self.payload_field: payload},
                    created_at=now,
                    updated_at=now,
                )
            )
