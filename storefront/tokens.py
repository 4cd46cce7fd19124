"""
Token issuing and access-token verification.

Access tokens are short-lived signed JWTs carrying
``{userId, email, role, type="access", exp, iat}`` (plus ``sub`` and ``jti``).
Refresh tokens are opaque random strings; their validity lives entirely in the
refresh token store.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import jwt

from storefront.errors import Expired, InvalidSignature, MalformedToken, WrongTokenType
from storefront.security.jwt_config import get_jwt_config

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
_ROLES = {"admin", "customer"}


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    email: str
    role: str
    jti: str | None
    issued_at: int
    expires_at: int


def new_refresh_token() -> str:
    """Opaque refresh credential (64 url-safe chars, never a JWT)."""
    return secrets.token_urlsafe(48)


def create_access_token(user_id: str, email: str, role: str) -> tuple[str, int]:
    """Sign an access token; returns ``(token, ttl_seconds)``.

    Raises ConfigurationError when no signing secret is configured.
    """
    cfg = get_jwt_config()
    now = datetime.now(UTC)
    ttl = timedelta(minutes=cfg.access_ttl_min)
    claims = {
        "sub": str(user_id),
        "userId": str(user_id),
        "email": email,
        "role": role,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + ttl,
        "jti": uuid4().hex,
    }
    if cfg.issuer:
        claims["iss"] = cfg.issuer
    if cfg.audience:
        claims["aud"] = cfg.audience

    logger.debug(
        "auth.create_access_token",
        extra={
            "meta": {
                "user_id": user_id,
                "expires_at": claims["exp"].isoformat(),
                "jti": claims["jti"],
            }
        },
    )
    return jwt.encode(claims, cfg.secret, algorithm=cfg.alg), int(ttl.total_seconds())


def issue_token_pair(user_id: str, email: str, role: str) -> TokenPair:
    access_token, ttl = create_access_token(user_id, email, role)
    return TokenPair(access_token=access_token, refresh_token=new_refresh_token(), expires_in=ttl)


def verify_access_token(token: str) -> AccessClaims:
    """Decode and validate an access token.

    Raises InvalidSignature, Expired, MalformedToken or WrongTokenType.
    """
    if not token or not isinstance(token, str):
        raise MalformedToken("empty token")

    cfg = get_jwt_config()
    options = {"require": ["exp", "iat"]}
    kwargs = {}
    if cfg.issuer:
        kwargs["issuer"] = cfg.issuer
    if cfg.audience:
        kwargs["audience"] = cfg.audience
    else:
        options["verify_aud"] = False

    try:
        payload = jwt.decode(
            token,
            cfg.secret,
            algorithms=[cfg.alg],
            leeway=cfg.clock_skew_s,
            options=options,
            **kwargs,
        )
    except jwt.ExpiredSignatureError as e:
        raise Expired("token expired") from e
    except jwt.InvalidSignatureError as e:
        raise InvalidSignature("bad signature") from e
    except jwt.InvalidTokenError as e:
        raise MalformedToken(f"undecodable token: {type(e).__name__}") from e

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise WrongTokenType(f"expected access token, got {payload.get('type')!r}")

    user_id = payload.get("userId") or payload.get("sub")
    email = payload.get("email")
    role = payload.get("role")
    if not isinstance(user_id, str) or not user_id:
        raise MalformedToken("missing userId")
    if not isinstance(email, str) or role not in _ROLES:
        raise MalformedToken("missing identity claims")

    return AccessClaims(
        user_id=user_id,
        email=email,
        role=role,
        jti=payload.get("jti"),
        issued_at=int(payload["iat"]),
        expires_at=int(payload["exp"]),
    )
