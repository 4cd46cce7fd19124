"""
User identity persistence: lookup by email/id and account creation.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from storefront.db.core import get_async_session
from storefront.db.models import User
from storefront.errors import ValidationFailed

logger = logging.getLogger(__name__)

ROLES = ("admin", "customer")


class EmailAlreadyRegistered(ValidationFailed):
    code = "email_taken"

    def __init__(self):
        super().__init__("Email already registered")


class UserStore:
    """Data Access Object for user identities.

    Emails are stored normalized (lower-cased, trimmed); callers pass the
    normalized value.
    """

    async def get_by_email(self, email: str) -> User | None:
        async with get_async_session() as session:
            result = await session.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def get_by_id(self, user_id: str) -> User | None:
        async with get_async_session() as session:
            return await session.get(User, user_id)

    async def email_exists(self, email: str) -> bool:
        async with get_async_session() as session:
            result = await session.execute(
                select(func.count()).select_from(User).where(User.email == email)
            )
            return (result.scalar_one() or 0) > 0

    async def create(
        self,
        *,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        role: str = "customer",
        phone_number: str | None = None,
        accept_terms: bool = False,
        join_promotions: bool = False,
    ) -> User:
        """Insert a user. Raises EmailAlreadyRegistered on a duplicate email."""
        if role not in ROLES:
            raise ValueError(f"unknown role {role!r}")
        now = datetime.now(UTC)
        user = User(
            email=email,
            password_hash=password_hash,
            role=role,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
            accept_terms=accept_terms,
            join_promotions=join_promotions,
            created_at=now,
            updated_at=now,
        )
        async with get_async_session() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as e:
                # Lost a race against a concurrent registration for the same email
                await session.rollback()
                raise EmailAlreadyRegistered() from e
        logger.info("user.created", extra={"meta": {"user_id": user.id, "role": role}})
        return user
