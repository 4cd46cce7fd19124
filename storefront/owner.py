"""Ownership key for guest- or user-scoped documents (carts, wishlists).

A document belongs to exactly one of a registered user or a guest session.
Stores take an ``OwnerKey`` and translate it into column values, so the
"exactly one is set" rule never has to be re-checked by callers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class UserOwner:
    user_id: str

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id must be non-empty")


@dataclass(frozen=True)
class GuestOwner:
    session_id: str

    def __post_init__(self) -> None:
        if not self.session_id:
            raise ValueError("session_id must be non-empty")


OwnerKey = UserOwner | GuestOwner


def owner_columns(owner: OwnerKey) -> dict[str, str | None]:
    """Column values identifying ``owner``; the other id is always None."""
    if isinstance(owner, UserOwner):
        return {"user_id": owner.user_id, "session_id": None}
    if isinstance(owner, GuestOwner):
        return {"user_id": None, "session_id": owner.session_id}
    raise TypeError(f"unsupported owner key: {owner!r}")


def owner_clause(model: Any, owner: OwnerKey):
    """SQL filter selecting the row owned by ``owner`` on ``model``."""
    if isinstance(owner, UserOwner):
        return model.user_id == owner.user_id
    if isinstance(owner, GuestOwner):
        return model.session_id == owner.session_id
    raise TypeError(f"unsupported owner key: {owner!r}")
