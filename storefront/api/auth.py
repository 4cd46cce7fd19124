"""
Authentication endpoints: login, registration, refresh, logout, email probe
and session listing.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from storefront.api.responses import token_response, user_public
from storefront.cookies import clear_access_cookie, set_access_cookie
from storefront.credentials import (
    CredentialVerifier,
    hash_password,
    normalize_email,
    validate_password_strength,
)
from storefront.db.models import User
from storefront.deps.user import get_current_principal, get_guest_session_id, get_optional_principal
from storefront import metrics
from storefront.errors import (
    AuthError,
    InvalidCredentials,
    InvalidRefreshToken,
    RateLimitedError,
    ValidationFailed,
)
from storefront.rate_limit import RateLimitResult, client_ip, limiter
from storefront.reconcile import ReconciliationEngine, ReconciliationReport
from storefront.refresh_store import RefreshTokenStore
from storefront.security.principal import Principal
from storefront.settings import get_settings
from storefront.settings_rate import rate_limit_settings
from storefront.stores.users import EmailAlreadyRegistered, UserStore
from storefront.tokens import TokenPair, create_access_token, issue_token_pair, new_refresh_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

users = UserStore()
verifier = CredentialVerifier(users)
refresh_store = RefreshTokenStore()
engine = ReconciliationEngine()


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LoginRequest(_CamelModel):
    email: str = ""
    password: str = ""
    device_info: str | None = Field(default=None, alias="deviceInfo")


class RegisterRequest(_CamelModel):
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    email: str = ""
    password: str = ""
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    accept_terms: bool = Field(default=False, alias="acceptTerms")
    join_promotions: bool = Field(default=False, alias="joinPromotions")
    role: str = "customer"
    device_info: str | None = Field(default=None, alias="deviceInfo")


class RefreshRequest(_CamelModel):
    refresh_token: str = Field(default="", alias="refreshToken")


class LogoutRequest(_CamelModel):
    refresh_token: str | None = Field(default=None, alias="refreshToken")


class CheckEmailRequest(_CamelModel):
    email: str = ""


async def _start_session(
    request: Request, response: Response, user: User, device_info: str | None
) -> TokenPair:
    pair = issue_token_pair(user.id, user.email, user.role)
    await refresh_store.store(
        user.id,
        pair.refresh_token,
        device_info=device_info,
        client_ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    set_access_cookie(response, pair.access_token, pair.expires_in)
    return pair


async def _reconcile(request: Request, user: User) -> ReconciliationReport | None:
    # Only customers own carts and wishlists
    if user.role != "customer":
        return None
    return await engine.reconcile(user.id, get_guest_session_id(request), user.email)


@router.post("/login")
async def login(body: LoginRequest, request: Request, response: Response) -> dict:
    if not body.email or not body.password:
        raise ValidationFailed("Email and password are required")

    user = await verifier.verify(body.email, body.password)
    if user is None:
        logger.info("auth.login_failed", extra={"meta": {"ip": client_ip(request)}})
        metrics.record_login("failure")
        raise InvalidCredentials()

    pair = await _start_session(request, response, user, body.device_info)
    await _reconcile(request, user)

    logger.info("auth.login", extra={"meta": {"user_id": user.id, "role": user.role}})
    metrics.record_login("success")
    redirect = "/admin" if user.role == "admin" else "/dashboard"
    return token_response(pair, redirect=redirect, user=user_public(user))


@router.post("/register")
async def register(body: RegisterRequest, request: Request, response: Response) -> dict:
    if not body.first_name or not body.last_name or not body.email or not body.password:
        raise ValidationFailed("First name, last name, email, and password are required")
    if not body.accept_terms:
        raise ValidationFailed("You must accept the terms and conditions")
    validate_password_strength(body.password)
    # Admins are provisioned out of band only
    if body.role != "customer":
        raise ValidationFailed("Invalid role. Only customers can register.")

    email = normalize_email(body.email)
    if await users.get_by_email(email) is not None:
        raise EmailAlreadyRegistered()

    user = await users.create(
        email=email,
        password_hash=hash_password(body.password),
        first_name=body.first_name.strip(),
        last_name=body.last_name.strip(),
        role="customer",
        phone_number=body.phone_number,
        accept_terms=True,
        join_promotions=body.join_promotions,
    )

    pair = await _start_session(request, response, user, body.device_info)
    report = await _reconcile(request, user)
    associated = report.orders_associated if report else 0

    logger.info(
        "auth.register",
        extra={"meta": {"user_id": user.id, "associated_orders": associated}},
    )
    return token_response(
        pair,
        redirect="/dashboard",
        user=user_public(user),
        associatedOrdersCount=associated,
    )


@router.post("/refresh")
async def refresh(body: RefreshRequest, request: Request, response: Response) -> dict:
    if not body.refresh_token:
        raise ValidationFailed("Refresh token is required")

    new_raw = new_refresh_token()
    user_id = await refresh_store.verify_and_rotate(
        body.refresh_token,
        new_raw,
        client_ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    if user_id is None:
        await _handle_refresh_failure(body.refresh_token, request)
        raise InvalidRefreshToken()

    user = await users.get_by_id(user_id)
    if user is None:
        await refresh_store.revoke(new_raw)
        logger.warning("auth.refresh_orphaned", extra={"meta": {"user_id": user_id}})
        metrics.record_refresh_rotation("failure", "user_missing")
        raise InvalidRefreshToken()

    access_token, ttl = create_access_token(user.id, user.email, user.role)
    pair = TokenPair(access_token=access_token, refresh_token=new_raw, expires_in=ttl)
    metrics.record_refresh_rotation("success")
    set_access_cookie(response, pair.access_token, pair.expires_in)
    return token_response(pair)


async def _handle_refresh_failure(raw_token: str, request: Request) -> None:
    record = await refresh_store.lookup(raw_token)
    if record is None or record.replaced_by_hash is None:
        logger.info("auth.refresh_rejected", extra={"meta": {"known": record is not None}})
        metrics.record_refresh_rotation("failure", "expired_or_revoked" if record else "unknown")
        return

    # A rotated token came back: either a replay or a lost concurrent race
    revoked = 0
    action = "reject"
    if get_settings().REFRESH_REUSE_REVOKES_ALL:
        revoked = await refresh_store.revoke_all(record.user_id)
        action = "revoke_all"
    metrics.record_refresh_rotation("failure", "reused")
    metrics.record_replay(action, "rotated_token_reused")
    logger.warning(
        "auth.refresh_replay",
        extra={
            "meta": {
                "user_id": record.user_id,
                "ip": client_ip(request),
                "revoked_sessions": revoked,
            }
        },
    )


@router.post("/logout")
async def logout(
    response: Response,
    body: LogoutRequest | None = None,
    principal: Principal | None = Depends(get_optional_principal),
) -> dict:
    clear_access_cookie(response)

    if body is not None and body.refresh_token:
        revoked = await refresh_store.revoke(body.refresh_token)
        return {
            "success": True,
            "message": "Logged out successfully" if revoked else "Token already invalid or not found",
        }

    if principal is None:
        raise AuthError()

    count = await refresh_store.revoke_all(principal.user_id)
    logger.info("auth.logout_all", extra={"meta": {"user_id": principal.user_id, "count": count}})
    return {"success": True, "message": "Logged out successfully", "revokedTokens": count}


def _email_probe_allowed(request: Request) -> RateLimitResult:
    limit = rate_limit_settings.email_check_limit
    result = limiter.check(
        f"email-check:{client_ip(request)}",
        limit,
        rate_limit_settings.email_check_window_s * 1000,
    )
    if not result.allowed:
        raise RateLimitedError(result)
    return result


@router.post("/check-email")
async def check_email(body: CheckEmailRequest, request: Request) -> JSONResponse:
    if not body.email:
        raise ValidationFailed("Email is required")

    limit = rate_limit_settings.email_check_limit
    try:
        allowance = _email_probe_allowed(request)
    except RateLimitedError as e:
        logger.warning("auth.email_check_rate_limited", extra={"meta": {"ip": client_ip(request)}})
        metrics.record_rate_limit("check_email", "blocked")
        # Same boolean as the "exists" branch so limiter state is not an oracle
        return JSONResponse(
            {"exists": True, "message": e.public_message},
            status_code=e.status,
            headers=e.result.headers(limit),
        )

    try:
        exists = await users.email_exists(normalize_email(body.email))
    except Exception:
        logger.exception("auth.email_check_failed")
        return JSONResponse({"exists": True}, status_code=500)

    return JSONResponse({"exists": exists}, headers=allowance.headers(limit))


@router.get("/sessions")
async def list_sessions(principal: Principal = Depends(get_current_principal)) -> dict:
    records = await refresh_store.list_active(principal.user_id)
    return {"sessions": [r.public_dict() for r in records]}
