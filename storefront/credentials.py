"""
Credential verification: email normalization, password hashing and the
email/password check used by login.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache

from passlib.context import CryptContext

from storefront.db.models import User
from storefront.errors import ValidationFailed
from storefront.settings import get_settings
from storefront.stores.users import UserStore

logger = logging.getLogger(__name__)

_SUPPORTED_SCHEMES = ["bcrypt", "pbkdf2_sha256"]
_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@lru_cache(maxsize=4)
def _context_for(scheme: str) -> CryptContext:
    if scheme not in _SUPPORTED_SCHEMES:
        logger.warning("Unknown PASSWORD_SCHEME %r, using bcrypt", scheme)
        scheme = "bcrypt"
    # Every listed scheme verifies; only the default is used for new hashes
    return CryptContext(schemes=_SUPPORTED_SCHEMES, default=scheme, deprecated="auto")


def pwd_context() -> CryptContext:
    return _context_for(get_settings().PASSWORD_SCHEME)


def hash_password(password: str) -> str:
    return pwd_context().hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context().verify(password, password_hash)
    except (ValueError, TypeError):
        # Unrecognised or corrupt stored hash
        logger.warning("auth.password_hash_unreadable")
        return False


@lru_cache(maxsize=4)
def _dummy_hash(scheme: str) -> str:
    return _context_for(scheme).hash("storefront-timing-equalizer")


def validate_password_strength(password: str) -> None:
    """Raise ValidationFailed describing the first unmet password rule."""
    if len(password) < 8:
        raise ValidationFailed("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        raise ValidationFailed("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValidationFailed("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValidationFailed("Password must contain at least one number")
    if not _SPECIAL_RE.search(password):
        raise ValidationFailed("Password must contain at least one special character")


class CredentialVerifier:
    def __init__(self, users: UserStore | None = None):
        self.users = users or UserStore()

    async def verify(self, email: str, password: str) -> User | None:
        """Return the user when the pair matches, else None.

        Unknown emails still pay for one hash verification so response timing
        does not reveal which half of the pair was wrong.
        """
        user = await self.users.get_by_email(normalize_email(email))
        if user is None:
            verify_password(password, _dummy_hash(get_settings().PASSWORD_SCHEME))
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user
