"""Stripe billing sync API.

Receives Stripe webhooks, Firebase Auth lifecycle events and the customer
portal callable. Document triggers (checkout sessions, customer deletion,
invoices) run separately in ``stripe_sync.listeners``.

Usage:
    uvicorn stripe_sync.main:app --host 0.0.0.0 --port 8080
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, get_settings
from .dependencies import get_firebase_app, get_firestore, get_stripe
from .middleware.rate_limit import setup_rate_limiting
from .routers import auth_events, health, portal, webhooks

logger = logging.getLogger("stripe_sync.main")

APP_TITLE = "Stripe Billing Sync API"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
    )
    # The Stripe SDK logs every request at INFO
    logging.getLogger("stripe").setLevel(logging.WARNING)


def _startup_checks(settings: Settings) -> None:
    """Fail fast when Firebase is unreachable; warn on missing Stripe secrets."""
    get_firebase_app()
    get_firestore()
    get_stripe(settings)
    logger.info("Firebase and Stripe ready (Stripe API %s)", settings.stripe_api_version)

    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET not set; every webhook will be rejected")
    if not settings.auth_events_secret:
        logger.warning("AUTH_EVENTS_SECRET not set; /api/auth-events will reject all calls")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("stripe-sync v%s starting (debug=%s)", __version__, settings.debug)
        try:
            _startup_checks(settings)
        except Exception:
            logger.exception("Startup failed")
            raise
        yield
        logger.info("stripe-sync stopped")

    # Interactive docs only in debug; the webhook surface is not for browsing
    docs = {} if settings.debug else {"docs_url": None, "redoc_url": None, "openapi_url": None}
    app = FastAPI(title=APP_TITLE, version=__version__, lifespan=lifespan, **docs)

    setup_rate_limiting(app)

    @app.middleware("http")
    async def harden_and_time(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)

        if "server" in response.headers:
            del response.headers["server"]
        response.headers.update(SECURITY_HEADERS)

        logger.debug(
            "%s %s -> %s (%.0fms)",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s", request.url.path)
        content = {"error": "Internal server error", "code": "INTERNAL_ERROR"}
        if settings.debug:
            content.update(error=str(exc), type=type(exc).__name__)
        return JSONResponse(status_code=500, content=content)

    app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
    app.include_router(portal.router, prefix="/api", tags=["Portal"])
    app.include_router(auth_events.router, prefix="/api", tags=["Auth Events"])
    app.include_router(health.router, prefix="/api", tags=["Health"])

    @app.get("/")
    async def root():
        return {"name": APP_TITLE, "version": __version__, "status": "running"}

    return app


configure_logging(get_settings().debug)
app = create_app()
