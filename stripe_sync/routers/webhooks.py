"""Stripe webhook endpoints.

Endpoints:
    POST /api/webhooks/stripe               - Full payments mirror
    POST /api/webhooks/stripe/subscriptions - Subscriptions-only mirror
    POST /api/webhooks/stripe/invoices      - Status of sent invoices
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ..context import SyncContext
from ..dependencies import get_context
from ..dispatcher import DispatchResult, InvoiceWebhookDispatcher, WebhookDispatcher
from ..events import PAYMENTS_EVENTS, SUBSCRIPTIONS_EVENTS
from ..utils.client_ip import get_client_ip

router = APIRouter()
logger = logging.getLogger("stripe_sync.webhooks")

SIGNATURE_HEADER = "stripe-signature"


def _to_response(result: DispatchResult) -> Response:
    if isinstance(result.body, str):
        return PlainTextResponse(result.body, status_code=result.status_code)
    return JSONResponse(result.body, status_code=result.status_code)


async def _dispatch(request: Request, dispatcher: WebhookDispatcher) -> Response:
    # Signature verification needs the exact bytes Stripe sent
    payload = await request.body()
    result = dispatcher.dispatch(
        payload,
        request.headers.get(SIGNATURE_HEADER),
        ip=get_client_ip(request),
    )
    return _to_response(result)


@router.post("/webhooks/stripe")
async def handle_webhook_events(request: Request, ctx: SyncContext = Depends(get_context)) -> Response:
    return await _dispatch(request, WebhookDispatcher(ctx, PAYMENTS_EVENTS))


@router.post("/webhooks/stripe/subscriptions")
async def handle_subscription_webhook_events(request: Request, ctx: SyncContext = Depends(get_context)) -> Response:
    return await _dispatch(request, WebhookDispatcher(ctx, SUBSCRIPTIONS_EVENTS))


@router.post("/webhooks/stripe/invoices")
async def update_invoice(request: Request, ctx: SyncContext = Depends(get_context)) -> Response:
    return await _dispatch(request, InvoiceWebhookDispatcher(ctx))
