"""
Application composition: ``create_app()`` and the module-level ``app`` used by
``uvicorn storefront.main:app``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storefront import __version__
from storefront.db.core import dispose_engine, init_models
from storefront.errors import register_error_handlers
from storefront.logging_config import configure_logging
from storefront.middleware.gatekeeper import GatekeeperMiddleware
from storefront.rate_limit import sweep_forever
from storefront.security.jwt_config import get_jwt_config
from storefront.settings import get_settings

logger = logging.getLogger(__name__)

_background_tasks: set[asyncio.Task] = set()


def start_background_task(coro) -> asyncio.Task:
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(lambda t: _background_tasks.discard(t))
    return task


async def cancel_background_tasks(timeout: float = 2.0) -> None:
    if not _background_tasks:
        return
    for t in list(_background_tasks):
        t.cancel()
    await asyncio.wait(_background_tasks, timeout=timeout)
    _background_tasks.clear()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup validation, schema creation, limiter sweep; orderly shutdown."""
    settings = get_settings()

    # Fail fast on a missing or weak signing secret
    cfg = get_jwt_config()
    logger.info(
        "startup.jwt_config",
        extra={"meta": {"alg": cfg.alg, "access_ttl_min": cfg.access_ttl_min, "refresh_ttl_days": cfg.refresh_ttl_days}},
    )

    if settings.AUTO_CREATE_SCHEMA:
        await init_models()

    start_background_task(sweep_forever())
    logger.info("startup.complete", extra={"meta": {"env": settings.ENV}})
    try:
        yield
    finally:
        await cancel_background_tasks()
        await dispose_engine()
        logger.info("shutdown.complete")


def _register_routers(app: FastAPI) -> None:
    from storefront.api.admin import router as admin_router
    from storefront.api.auth import router as auth_router
    from storefront.api.cart import router as cart_router
    from storefront.api.health import router as health_router
    from storefront.api.metrics import router as metrics_router
    from storefront.api.user import router as user_router
    from storefront.api.wishlist import router as wishlist_router

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(admin_router)
    app.include_router(cart_router)
    app.include_router(wishlist_router)


def create_app(*, configure_logs: bool = True) -> FastAPI:
    """Assemble the FastAPI application with routers, middleware and error handlers."""
    if configure_logs:
        configure_logging()

    settings = get_settings()
    app = FastAPI(
        title="Storefront Identity",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url=None,
    )

    _register_routers(app)
    app.add_middleware(GatekeeperMiddleware)
    register_error_handlers(app)
    return app


app = create_app()
