from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from storefront.db.core import health_check

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])  # unauthenticated health; not privileged


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"
    resp.headers["Pragma"] = "no-cache"
    return resp


@router.get("/healthz")
async def healthz() -> JSONResponse:
    """Liveness: process is up. No I/O."""
    return _no_store(JSONResponse({"ok": True, "status": "ok"}))


@router.get("/healthz/ready")
async def healthz_ready() -> JSONResponse:
    """Readiness: the database answers. 503 while it does not."""
    if await health_check():
        return _no_store(JSONResponse({"ok": True, "status": "ok", "db": "up"}))
    logger.error("health.not_ready", extra={"meta": {"db": "down"}})
    return _no_store(JSONResponse({"ok": False, "status": "degraded", "db": "down"}, status_code=503))
