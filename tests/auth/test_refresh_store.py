import asyncio
from datetime import timedelta

from sqlalchemy import select

from storefront.db.core import get_async_session
from storefront.db.models import RefreshTokenRecord
from storefront.refresh_store import RefreshTokenStore, hash_token
from storefront.tokens import new_refresh_token


async def test_raw_token_is_never_persisted(make_user):
    user = await make_user()
    store = RefreshTokenStore()
    raw = new_refresh_token()
    await store.store(user.id, raw, device_info="laptop", client_ip="203.0.113.5")

    async with get_async_session() as session:
        rows = (await session.execute(select(RefreshTokenRecord))).scalars().all()

    assert len(rows) == 1
    assert rows[0].token_hash == hash_token(raw)
    assert rows[0].token_hash != raw
    assert len(rows[0].token_hash) == 64


async def test_rotation_retires_old_and_activates_new(make_user):
    user = await make_user()
    store = RefreshTokenStore()
    old, new = new_refresh_token(), new_refresh_token()
    await store.store(user.id, old)

    assert await store.verify_and_rotate(old, new) == user.id

    old_record = await store.lookup(old)
    new_record = await store.lookup(new)
    assert old_record.status == "rotated"
    assert old_record.replaced_by_hash == hash_token(new)
    assert new_record.is_active
    assert new_record.user_id == user.id


async def test_rotated_token_cannot_be_reused(make_user):
    user = await make_user()
    store = RefreshTokenStore()
    old = new_refresh_token()
    await store.store(user.id, old)
    await store.verify_and_rotate(old, new_refresh_token())

    assert await store.verify_and_rotate(old, new_refresh_token()) is None


async def test_unknown_token_fails(db):
    assert await RefreshTokenStore().verify_and_rotate("nope", new_refresh_token()) is None


async def test_concurrent_rotation_has_exactly_one_winner(make_user):
    user = await make_user()
    store = RefreshTokenStore()
    raw = new_refresh_token()
    await store.store(user.id, raw)

    results = await asyncio.gather(
        *(store.verify_and_rotate(raw, new_refresh_token()) for _ in range(5))
    )

    assert results.count(user.id) == 1
    assert results.count(None) == 4
    assert len(await store.list_active(user.id)) == 1


async def test_expired_token_fails(make_user):
    user = await make_user()
    store = RefreshTokenStore(ttl=timedelta(seconds=-1))
    raw = new_refresh_token()
    await store.store(user.id, raw)

    assert (await store.lookup(raw)).status == "expired"
    assert await store.verify_and_rotate(raw, new_refresh_token()) is None


async def test_revoke_is_idempotent(make_user):
    user = await make_user()
    store = RefreshTokenStore()
    raw = new_refresh_token()
    await store.store(user.id, raw)

    assert await store.revoke(raw) is True
    assert await store.revoke(raw) is False
    assert (await store.lookup(raw)).status == "revoked"
    assert await store.verify_and_rotate(raw, new_refresh_token()) is None


async def test_revoke_all_only_touches_that_user(make_user):
    alice = await make_user(email="alice@example.com")
    bob = await make_user(email="bob@example.com")
    store = RefreshTokenStore()
    for _ in range(3):
        await store.store(alice.id, new_refresh_token())
    bob_token = new_refresh_token()
    await store.store(bob.id, bob_token)

    assert await store.revoke_all(alice.id) == 3
    assert await store.list_active(alice.id) == []
    assert (await store.lookup(bob_token)).is_active


async def test_list_active_exposes_no_hashes(make_user):
    user = await make_user()
    store = RefreshTokenStore()
    await store.store(user.id, new_refresh_token(), device_info="phone", user_agent="UA/1.0")

    sessions = [r.public_dict() for r in await store.list_active(user.id)]

    assert len(sessions) == 1
    assert sessions[0]["deviceInfo"] == "phone"
    assert "tokenHash" not in sessions[0]
    assert "replacedByHash" not in sessions[0]


async def test_purge_removes_expired_and_old_revoked(make_user):
    user = await make_user()
    live = RefreshTokenStore()
    stale = RefreshTokenStore(ttl=timedelta(seconds=-1))
    keep, revoked, expired = new_refresh_token(), new_refresh_token(), new_refresh_token()
    await live.store(user.id, keep)
    await live.store(user.id, revoked)
    await stale.store(user.id, expired)
    await live.revoke(revoked)

    # Revoked just now, so a 30 day retention keeps it
    assert await live.purge_expired(retention_days=30) == 1
    assert await live.lookup(expired) is None
    assert await live.lookup(revoked) is not None

    assert await live.purge_expired(retention_days=-1) == 1
    assert await live.lookup(revoked) is None
    assert (await live.lookup(keep)).is_active


async def test_revoke_leaves_expired_record_alone(make_user):
    user = await make_user()
    raw = new_refresh_token()
    await RefreshTokenStore(ttl=timedelta(seconds=-1)).store(user.id, raw)

    assert await RefreshTokenStore().revoke(raw) is False
    record = await RefreshTokenStore().lookup(raw)
    assert record.revoked_at is None
    assert record.status == "expired"


async def test_revoke_all_counts_only_active_records(make_user):
    user = await make_user()
    live = RefreshTokenStore()
    await live.store(user.id, new_refresh_token())
    await RefreshTokenStore(ttl=timedelta(seconds=-1)).store(user.id, new_refresh_token())
    rotated = new_refresh_token()
    await live.store(user.id, rotated)
    await live.verify_and_rotate(rotated, new_refresh_token())

    # One untouched live token plus the successor of the rotated one
    assert await live.revoke_all(user.id) == 2
    assert await live.revoke_all(user.id) == 0
