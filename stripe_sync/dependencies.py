"""Process-wide clients and FastAPI dependencies.

Firebase Admin, Firestore, the Stripe SDK and the Pub/Sub channel are
created once per process and bundled into a ``SyncContext`` by
``get_context``; tests override that dependency with doubles.
Callables identify their caller from a Firebase ID token.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import firebase_admin
import stripe
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth, credentials, firestore

from . import __version__
from .channel import EventChannel
from .config import Settings, get_settings
from .context import SyncContext
from .utils.client_ip import get_client_ip
from .utils.security_logger import security_logger

logger = logging.getLogger("stripe_sync.dependencies")

APP_INFO_NAME = "stripe-sync"

bearer_scheme = HTTPBearer(auto_error=False)

_clients: Dict[str, Any] = {}


# =============================================================================
# CLIENTS
# =============================================================================

def get_firebase_app() -> firebase_admin.App:
    """Default Firebase app, initialized on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    sa_path = get_settings().service_account_path
    if sa_path and not Path(sa_path).exists():
        raise RuntimeError(f"Service account not found: {sa_path}")
    # Without a key file, application default credentials (Cloud Run, emulator)
    cred = credentials.Certificate(sa_path) if sa_path else None
    app = firebase_admin.initialize_app(cred)
    logger.info("Firebase Admin initialized for project %s", app.project_id)
    return app


def get_firestore():
    if "firestore" not in _clients:
        _clients["firestore"] = firestore.client(get_firebase_app())
        logger.info("Firestore client ready")
    return _clients["firestore"]


def get_stripe(settings: Optional[Settings] = None):
    """The ``stripe`` module with key, pinned API version and app info applied."""
    settings = settings or get_settings()
    if not settings.stripe_api_key:
        logger.warning("STRIPE_API_KEY not set; Stripe calls will fail")
    stripe.api_key = settings.stripe_api_key
    stripe.api_version = settings.stripe_api_version
    stripe.set_app_info(APP_INFO_NAME, version=__version__)
    return stripe


def get_event_channel(settings: Optional[Settings] = None) -> Optional[EventChannel]:
    """Pub/Sub event channel, or None when no topic is configured."""
    settings = settings or get_settings()
    if not settings.event_channel_topic:
        return None
    if "events" not in _clients:
        channel = EventChannel.from_topic(settings.gcp_project or "", settings.event_channel_topic)
        logger.info("Publishing handled events to %s", channel.topic_path)
        _clients["events"] = channel
    return _clients["events"]


def build_context(db=None, settings: Optional[Settings] = None) -> SyncContext:
    settings = settings or get_settings()
    get_firebase_app()
    return SyncContext(
        db=db if db is not None else get_firestore(),
        stripe=get_stripe(settings),
        auth=auth,
        settings=settings,
        events=get_event_channel(settings),
    )


def get_context() -> SyncContext:
    return build_context()


# =============================================================================
# CALLER IDENTITY
# =============================================================================

# Checked in order; RevokedIdTokenError and ExpiredIdTokenError subclass InvalidIdTokenError
TOKEN_ERRORS = (
    (auth.RevokedIdTokenError, "revoked_token", "Token has been revoked"),
    (auth.ExpiredIdTokenError, "expired_token", "Token has expired"),
    (auth.InvalidIdTokenError, "invalid_token", "Invalid token"),
)


def _reject(request: Request, reason: str, message: str, **extra) -> HTTPException:
    security_logger.auth_failure(
        ip=get_client_ip(request),
        reason=reason,
        path=request.url.path,
        user_agent=request.headers.get("user-agent"),
        **extra,
    )
    return HTTPException(401, message)


async def verify_firebase_token(
    request: Request,
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, Any]:
    """Decoded ID token claims (including ``uid``) of the caller.

    Raises:
        HTTPException 401 when the token is missing, revoked, expired or invalid
    """
    if bearer is None:
        raise _reject(request, "missing_auth_header", "The function must be called while authenticated!")

    try:
        get_firebase_app()
        return auth.verify_id_token(bearer.credentials, check_revoked=True)
    except Exception as exc:
        for error_type, reason, message in TOKEN_ERRORS:
            if isinstance(exc, error_type):
                raise _reject(request, reason, message, error=str(exc)) from exc
        raise _reject(request, "auth_error", "Authentication failed", error=str(exc)) from exc


async def optional_firebase_token(
    request: Request,
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Dict[str, Any]]:
    """Like ``verify_firebase_token`` but None when no token was sent.

    Callables answer a missing caller with their own ``unauthenticated``
    error body.
    """
    if bearer is None:
        return None
    return await verify_firebase_token(request, bearer)
