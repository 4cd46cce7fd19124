"""Application-level errors and standardized error handlers."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from storefront.logging_config import req_id_var

if TYPE_CHECKING:
    from storefront.rate_limit import RateLimitResult

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base for errors that map onto a public HTTP outcome."""

    code = "internal_error"
    status = 500
    public_message = "Something went wrong"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)


class ConfigurationError(StorefrontError):
    """Missing or unusable server configuration (e.g. no signing secret)."""

    code = "configuration_error"


class AuthError(StorefrontError):
    """Missing, invalid or expired credentials.

    Subclasses exist for logging and tests; they all render the same body so a
    caller cannot tell which check failed.
    """

    code = "unauthorized"
    status = 401
    public_message = "Unauthorized"


class InvalidSignature(AuthError):
    pass


class Expired(AuthError):
    pass


class MalformedToken(AuthError):
    pass


class WrongTokenType(AuthError):
    pass


class InvalidCredentials(AuthError):
    """Login failure; identical for unknown email and wrong password."""

    code = "invalid_credentials"
    public_message = "Invalid email or password"


class InvalidRefreshToken(AuthError):
    code = "invalid_refresh_token"
    public_message = "Invalid or expired refresh token"


class ForbiddenError(StorefrontError):
    """Authenticated identity lacks the role the route requires."""

    code = "forbidden"
    status = 403
    public_message = "Forbidden"


class CSRFError(StorefrontError):
    code = "csrf_invalid"
    status = 403
    public_message = "Invalid CSRF token. Please refresh the page and try again."


class RateLimitedError(StorefrontError):
    code = "rate_limited"
    status = 429
    public_message = "Too many requests. Please try again later."

    def __init__(self, result: RateLimitResult, message: str | None = None):
        super().__init__(message)
        self.result = result


class ReconciliationError(StorefrontError):
    """Guest-to-user merge failure. Caught inside the engine, never rendered."""

    code = "reconciliation_error"

    def __init__(self, operation: str, message: str | None = None):
        super().__init__(message or f"reconciliation step failed: {operation}")
        self.operation = operation


class ValidationFailed(StorefrontError):
    code = "validation_error"
    status = 400
    public_message = "Invalid request"


def json_error(
    code: str,
    message: str,
    status: int,
    meta: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Create a standardized JSON error response.

    Shape: {"code", "message", "meta"} with lowercase codes.
    """
    return JSONResponse(
        {"code": code.lower(), "message": message, "meta": meta or {}},
        status_code=status,
        headers=headers,
    )


def _base_meta(request: Request) -> dict[str, Any]:
    return {
        "request_id": req_id_var.get(),
        "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
    }


def render_error(exc: StorefrontError, meta: dict[str, Any] | None = None) -> JSONResponse:
    """Render a StorefrontError with its public message only."""
    headers = None
    if isinstance(exc, AuthError):
        headers = {"WWW-Authenticate": "Bearer"}
    message = exc.public_message
    if isinstance(exc, ValidationFailed):
        # Validation messages are written for the end user
        message = str(exc)
    return json_error(exc.code, message, exc.status, meta=meta, headers=headers)


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    if isinstance(exc, ConfigurationError):
        logger.critical("config.error", extra={"meta": {"error": str(exc)}})
        return json_error("internal_error", "Something went wrong", 500, meta=_base_meta(request))
    return render_error(exc, meta=_base_meta(request))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    status_to_code = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        429: "rate_limited",
    }
    code = status_to_code.get(exc.status_code, "http_error")
    message = exc.detail if isinstance(exc.detail, str) else code
    return json_error(
        code, message, exc.status_code, meta=_base_meta(request), headers=exc.headers
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    meta = _base_meta(request)
    meta["errors"] = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()
    ]
    return json_error("validation_error", "Invalid request", 400, meta=meta)


async def global_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={"meta": {"path": request.url.path, "error_type": type(exc).__name__}},
    )
    return json_error("internal_error", "Something went wrong", 500, meta=_base_meta(request))


def register_error_handlers(app) -> None:
    """Register standardized error handlers on the FastAPI app."""
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_error_handler)
