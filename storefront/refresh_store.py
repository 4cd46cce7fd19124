"""
Durable refresh token store.

Raw refresh tokens are never persisted: each record is keyed by
HMAC-SHA256(pepper, raw). The pepper is REFRESH_TOKEN_PEPPER, falling back to
the JWT signing secret, so a database dump alone cannot be used to test
guessed tokens.

Record lifecycle: active -> rotated | revoked, both terminal. Expiry is
evaluated at read time and never written.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import and_, delete, or_, select, update

from storefront.db.core import get_async_session
from storefront.db.models import RefreshTokenRecord
from storefront.security.jwt_config import get_jwt_config
from storefront.settings import get_settings

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands datetimes back naive; everything is stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _clip(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value[:limit]


def hash_token(raw_token: str) -> str:
    pepper = get_settings().REFRESH_TOKEN_PEPPER or get_jwt_config().secret
    return hmac.new(pepper.encode(), raw_token.encode(), hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class RefreshRecord:
    id: str
    user_id: str
    issued_at: datetime
    expires_at: datetime
    revoked_at: datetime | None
    replaced_by_hash: str | None
    last_used_at: datetime | None
    device_info: str | None
    client_ip: str | None
    user_agent: str | None

    @property
    def status(self) -> str:
        if self.replaced_by_hash is not None:
            return "rotated"
        if self.revoked_at is not None:
            return "revoked"
        if self.expires_at <= datetime.now(UTC):
            return "expired"
        return "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def public_dict(self) -> dict:
        """Session view safe to hand to the owning user (no hashes)."""
        return {
            "id": self.id,
            "issuedAt": self.issued_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "lastUsedAt": self.last_used_at.isoformat() if self.last_used_at else None,
            "deviceInfo": self.device_info,
            "clientIp": self.client_ip,
            "userAgent": self.user_agent,
        }


def _to_record(row: RefreshTokenRecord) -> RefreshRecord:
    return RefreshRecord(
        id=row.id,
        user_id=row.user_id,
        issued_at=_as_utc(row.issued_at),
        expires_at=_as_utc(row.expires_at),
        revoked_at=_as_utc(row.revoked_at),
        replaced_by_hash=row.replaced_by_hash,
        last_used_at=_as_utc(row.last_used_at),
        device_info=row.device_info,
        client_ip=row.client_ip,
        user_agent=row.user_agent,
    )


def _active(now: datetime) -> tuple:
    # Expiry is never written, so "active" has to be re-derived in every WHERE
    return (
        RefreshTokenRecord.revoked_at.is_(None),
        RefreshTokenRecord.replaced_by_hash.is_(None),
        RefreshTokenRecord.expires_at > now,
    )


class RefreshTokenStore:
    def __init__(self, ttl: timedelta | None = None):
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        if self._ttl is not None:
            return self._ttl
        return timedelta(days=get_jwt_config().refresh_ttl_days)

    def _new_row(
        self,
        user_id: str,
        token_hash: str,
        now: datetime,
        device_info: str | None,
        client_ip: str | None,
        user_agent: str | None,
    ) -> RefreshTokenRecord:
        return RefreshTokenRecord(
            token_hash=token_hash,
            user_id=user_id,
            issued_at=now,
            expires_at=now + self.ttl,
            device_info=_clip(device_info, 200),
            client_ip=_clip(client_ip, 64),
            user_agent=user_agent,
        )

    async def store(
        self,
        user_id: str,
        raw_token: str,
        device_info: str | None = None,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        now = datetime.now(UTC)
        async with get_async_session() as session:
            session.add(
                self._new_row(user_id, hash_token(raw_token), now, device_info, client_ip, user_agent)
            )
            await session.commit()
        logger.info("auth.refresh_stored", extra={"meta": {"user_id": user_id}})

    async def verify_and_rotate(
        self,
        raw_token: str,
        new_raw_token: str,
        *,
        device_info: str | None = None,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> str | None:
        """Retire ``raw_token`` in favour of ``new_raw_token``; return its user id.

        The retirement is a single conditional UPDATE, so of any number of
        concurrent callers presenting the same token exactly one gets a row
        back. Returns None when the token is unknown, revoked, already rotated
        or expired.
        """
        old_hash = hash_token(raw_token)
        new_hash = hash_token(new_raw_token)
        now = datetime.now(UTC)

        async with get_async_session() as session:
            # The UPDATE must be the first statement so SQLite takes the write
            # lock before reading
            result = await session.execute(
                update(RefreshTokenRecord)
                .where(
                    RefreshTokenRecord.token_hash == old_hash,
                    *_active(now),
                )
                .values(revoked_at=now, replaced_by_hash=new_hash, last_used_at=now)
                .returning(RefreshTokenRecord.user_id)
                .execution_options(synchronize_session=False)
            )
            row = result.first()
            if row is None:
                await session.rollback()
                return None

            user_id = row[0]
            session.add(self._new_row(user_id, new_hash, now, device_info, client_ip, user_agent))
            await session.commit()

        logger.info("auth.refresh_rotated", extra={"meta": {"user_id": user_id}})
        return user_id

    async def revoke(self, raw_token: str) -> bool:
        """Revoke one active record. Returns False when nothing changed."""
        now = datetime.now(UTC)
        async with get_async_session() as session:
            result = await session.execute(
                update(RefreshTokenRecord)
                .where(
                    RefreshTokenRecord.token_hash == hash_token(raw_token),
                    *_active(now),
                )
                .values(revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            changed = (result.rowcount or 0) > 0
        if changed:
            logger.info("auth.refresh_revoked")
        return changed

    async def revoke_all(self, user_id: str) -> int:
        now = datetime.now(UTC)
        async with get_async_session() as session:
            result = await session.execute(
                update(RefreshTokenRecord)
                .where(
                    RefreshTokenRecord.user_id == user_id,
                    *_active(now),
                )
                .values(revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            count = result.rowcount or 0
        logger.info("auth.refresh_revoked_all", extra={"meta": {"user_id": user_id, "count": count}})
        return count

    async def lookup(self, raw_token: str) -> RefreshRecord | None:
        async with get_async_session() as session:
            result = await session.execute(
                select(RefreshTokenRecord).where(
                    RefreshTokenRecord.token_hash == hash_token(raw_token)
                )
            )
            row = result.scalar_one_or_none()
            return _to_record(row) if row else None

    async def list_active(self, user_id: str) -> list[RefreshRecord]:
        now = datetime.now(UTC)
        async with get_async_session() as session:
            result = await session.execute(
                select(RefreshTokenRecord)
                .where(
                    RefreshTokenRecord.user_id == user_id,
                    *_active(now),
                )
                .order_by(RefreshTokenRecord.issued_at.desc())
            )
            return [_to_record(row) for row in result.scalars()]

    async def purge_expired(self, retention_days: int = 30) -> int:
        """Delete expired records and revoked records older than the retention window."""
        now = datetime.now(UTC)
        cutoff = now - timedelta(days=retention_days)
        async with get_async_session() as session:
            result = await session.execute(
                delete(RefreshTokenRecord)
                .where(
                    or_(
                        RefreshTokenRecord.expires_at < now,
                        and_(
                            RefreshTokenRecord.revoked_at.is_not(None),
                            RefreshTokenRecord.revoked_at < cutoff,
                        ),
                    )
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            count = result.rowcount or 0
        logger.info("auth.refresh_purged", extra={"meta": {"count": count}})
        return count
