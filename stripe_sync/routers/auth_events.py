"""Firebase Auth lifecycle events.

Endpoints:
    POST /api/auth-events - user.created / user.deleted, forwarded by a
                            trusted caller holding AUTH_EVENTS_SECRET

The Stripe customer is created on sign-up when SYNC_USERS_ON_CREATE is on,
and deleted with the user when DELETE_STRIPE_CUSTOMERS is on.
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from ..context import SyncContext
from ..dependencies import get_context
from ..handlers.customer import on_user_created, on_user_deleted
from ..middleware.rate_limit import rate_limit_auth_events
from ..models import AuthEvent, ErrorResponse
from ..utils.client_ip import get_client_ip
from ..utils.security_logger import security_logger
from .responses import error_response

router = APIRouter()
logger = logging.getLogger("stripe_sync.auth_events")


def _secret_matches(expected: str, provided: Optional[str]) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


@router.post(
    "/auth-events",
    responses={
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
@rate_limit_auth_events
async def handle_auth_event(
    request: Request,
    payload: AuthEvent,
    x_auth_events_secret: Optional[str] = Header(default=None),
    ctx: SyncContext = Depends(get_context),
):
    if not _secret_matches(ctx.settings.auth_events_secret, x_auth_events_secret):
        security_logger.rejected_auth_event(
            ip=get_client_ip(request),
            path=request.url.path,
            reason="missing_secret" if not x_auth_events_secret else "bad_secret",
        )
        return error_response(401, error="Invalid auth event secret", code="UNAUTHORIZED")

    try:
        if payload.type == "user.created":
            record = on_user_created(ctx, payload.uid, email=payload.email, phone=payload.phone)
            return {"ok": True, "stripeId": (record or {}).get("stripeId")}

        deleted = on_user_deleted(ctx, payload.uid)
        return {"ok": True, "deleted": deleted}
    except Exception as exc:
        logger.exception("Auth event %s failed for user %s", payload.type, payload.uid)
        return error_response(
            500,
            error="Auth event handling failed",
            code="AUTH_EVENT_FAILED",
            details={"reason": str(exc) if ctx.settings.debug else None, "uid": payload.uid},
        )
