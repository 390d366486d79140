"""Customer portal callable.

Endpoints:
    POST /api/portal-link - Create a Stripe billing portal session for the caller
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request

from ..context import SyncContext
from ..dependencies import get_context, optional_firebase_token
from ..errors import CallableError
from ..handlers.portal import create_portal_link
from ..middleware.rate_limit import rate_limit_callable
from ..models import ErrorResponse, PortalLinkRequest
from .responses import error_response

router = APIRouter()
logger = logging.getLogger("stripe_sync.portal")


@router.post(
    "/portal-link",
    responses={
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
@rate_limit_callable
async def portal_link(
    request: Request,
    payload: PortalLinkRequest,
    decoded_token: Optional[Dict[str, Any]] = Depends(optional_firebase_token),
    ctx: SyncContext = Depends(get_context),
):
    uid = (decoded_token or {}).get("uid")
    try:
        return create_portal_link(
            ctx,
            uid,
            return_url=payload.returnUrl,
            locale=payload.locale,
            configuration=payload.configuration,
            flow_data=payload.flow_data,
        )
    except CallableError as exc:
        return error_response(exc.status_code, error=exc.message, code=exc.code)
