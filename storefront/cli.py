"""
storefront-admin: out-of-band operations.

  storefront-admin create-admin --email a@b.c [--password ...]
  storefront-admin purge-tokens [--retention-days 30]

``create-admin`` is the only way to obtain the admin role.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys

from storefront.credentials import hash_password, normalize_email, validate_password_strength
from storefront.db.core import dispose_engine, init_models
from storefront.errors import ValidationFailed
from storefront.logging_config import configure_logging
from storefront.refresh_store import RefreshTokenStore
from storefront.settings import get_settings
from storefront.stores.users import UserStore

logger = logging.getLogger(__name__)


async def _create_admin(args: argparse.Namespace) -> int:
    email = normalize_email(args.email)
    password = args.password or os.getenv("ADMIN_PASSWORD") or getpass.getpass("Admin password: ")
    try:
        validate_password_strength(password)
    except ValidationFailed as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    users = UserStore()
    if await users.get_by_email(email) is not None:
        print(f"error: {email} is already registered", file=sys.stderr)
        return 1

    user = await users.create(
        email=email,
        password_hash=hash_password(password),
        first_name=args.first_name,
        last_name=args.last_name,
        role="admin",
        accept_terms=True,
    )
    print({"id": user.id, "email": user.email, "role": user.role})
    return 0


async def _purge_tokens(args: argparse.Namespace) -> int:
    removed = await RefreshTokenStore().purge_expired(retention_days=args.retention_days)
    print({"purged": removed})
    return 0


async def _run(args: argparse.Namespace) -> int:
    try:
        if get_settings().AUTO_CREATE_SCHEMA:
            await init_models()
        return await args.handler(args)
    finally:
        await dispose_engine()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser("storefront-admin")
    sub = p.add_subparsers(dest="command", required=True)

    c = sub.add_parser("create-admin", help="Provision an admin account")
    c.add_argument("--email", required=True)
    c.add_argument("--password", default=None, help="Defaults to $ADMIN_PASSWORD or a prompt")
    c.add_argument("--first-name", default="Admin")
    c.add_argument("--last-name", default="User")
    c.set_defaults(handler=_create_admin)

    t = sub.add_parser("purge-tokens", help="Delete expired and long-revoked refresh tokens")
    t.add_argument("--retention-days", type=int, default=30)
    t.set_defaults(handler=_purge_tokens)
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
