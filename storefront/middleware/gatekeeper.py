# storefront/middleware/gatekeeper.py
"""
Per-request gate composing guest sessions, CSRF and access-token checks.

Order of operations:
1. request id, guest session (reused or minted)
2. CSRF cookie minted when absent
3. CSRF enforcement on mutating requests
4. route classification; public routes attach a valid token when present
5. protected routes require a valid access token
6. role-restricted routes compare the ``role`` claim
7. newly minted guest/CSRF cookies are written onto whatever response leaves

Exceptions raised here never reach the app's exception handlers, so failures
are rendered in place with the same envelope. Unhandled errors from downstream are
caught here too, while the request id and minted cookies are still in scope.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.types import ASGIApp

from storefront.cookies import read_csrf_cookie, set_csrf_cookie
from storefront.csrf import CSRFGuard, generate_csrf_token
from storefront.errors import (
    AuthError,
    ConfigurationError,
    CSRFError,
    ForbiddenError,
    json_error,
    render_error,
)
from storefront.guest_session import get_or_create, set_session_cookie
from storefront.logging_config import req_id_var
from storefront.security.principal import Principal, extract_access_token
from storefront.tokens import verify_access_token

logger = logging.getLogger(__name__)

PUBLIC = "public"
AUTHENTICATED = "authenticated"
ADMIN = "admin"

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


@dataclass(frozen=True)
class RoutePolicy:
    """Route classification table.

    Exact paths and prefixes are public; admin prefixes need the admin role;
    anything unlisted requires authentication.
    """

    public_exact: frozenset[str] = frozenset(
        {
            "/",
            "/login",
            "/register",
            "/products",
            "/cart",
            "/checkout",
            "/healthz",
            "/metrics",
            "/docs",
            "/openapi.json",
        }
    )
    public_prefixes: tuple[str, ...] = (
        "/healthz",
        "/api/auth",
        "/products",
        "/checkout",
        "/api/checkout",
        "/api/products",
        "/api/categories",
        "/api/cart",
        "/api/wishlist",
    )
    admin_prefixes: tuple[str, ...] = ("/admin", "/api/admin")

    def classify(self, path: str) -> str:
        if any(path == p or path.startswith(p + "/") for p in self.admin_prefixes):
            return ADMIN
        if path in self.public_exact:
            return PUBLIC
        if any(path == p or path.startswith(p + "/") for p in self.public_prefixes):
            return PUBLIC
        return AUTHENTICATED


def is_api_path(path: str) -> bool:
    return path == "/api" or path.startswith("/api/")


class GatekeeperMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        policy: RoutePolicy | None = None,
        csrf_guard: CSRFGuard | None = None,
    ):
        super().__init__(app)
        self.policy = policy or RoutePolicy()
        self.csrf_guard = csrf_guard or CSRFGuard()

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get("X-Request-ID", "")
        rid = incoming if _REQUEST_ID_RE.match(incoming) else uuid4().hex[:16]
        rid_token = req_id_var.set(rid)
        try:
            guest = get_or_create(request)
            request.state.guest_session_id = guest.session_id

            csrf_token = read_csrf_cookie(request)
            minted_csrf = None
            if not csrf_token:
                minted_csrf = generate_csrf_token()
            request.state.csrf_token = csrf_token or minted_csrf
            request.state.principal = None

            try:
                response = await self._gate(request, call_next)
            except Exception as e:
                logger.exception(
                    "unhandled_error",
                    extra={"meta": {"path": request.url.path, "error_type": type(e).__name__}},
                )
                response = json_error("internal_error", "Something went wrong", 500, meta=self._meta())

            if guest.is_new:
                set_session_cookie(response, guest.session_id)
            if minted_csrf:
                set_csrf_cookie(response, minted_csrf)
            response.headers["X-Request-ID"] = rid
            return response
        finally:
            req_id_var.reset(rid_token)

    def _meta(self) -> dict:
        return {"request_id": req_id_var.get()}

    async def _gate(self, request: Request, call_next) -> Response:
        path = request.url.path

        try:
            self.csrf_guard.verify(request)
        except CSRFError as e:
            return render_error(e, meta=self._meta())

        route_class = self.policy.classify(path)
        token = extract_access_token(request)
        principal: Principal | None = None
        if token:
            try:
                principal = Principal.from_claims(verify_access_token(token))
            except AuthError as e:
                logger.info(
                    "auth.token_rejected",
                    extra={"meta": {"path": path, "reason": type(e).__name__}},
                )
            except ConfigurationError as e:
                logger.critical("config.error", extra={"meta": {"error": str(e)}})
                return json_error("internal_error", "Something went wrong", 500, meta=self._meta())
        request.state.principal = principal

        if route_class == PUBLIC:
            return await call_next(request)

        if principal is None:
            if is_api_path(path):
                return render_error(AuthError(), meta=self._meta())
            return RedirectResponse("/login", status_code=307)

        if route_class == ADMIN and not principal.is_admin:
            logger.warning(
                "auth.forbidden",
                extra={"meta": {"path": path, "user_id": principal.user_id, "role": principal.role}},
            )
            if is_api_path(path):
                return render_error(ForbiddenError(), meta=self._meta())
            return RedirectResponse("/dashboard", status_code=307)

        return await call_next(request)
