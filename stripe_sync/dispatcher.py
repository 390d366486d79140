"""Stripe webhook dispatch.

``WebhookDispatcher`` turns a raw webhook request into a ``DispatchResult``:
- bad signature -> 401, nothing processed
- event outside the deployment's allow-list -> 200 ``{"received": true}``
- handled event -> 200 ``{"received": true}``
- handler failure -> ``failure_status`` with a fixed error body; the error
  is logged with the event id and type

The dispatcher never raises; routers only translate the result into a
response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Optional, Union

import stripe

from .context import SyncContext
from .errors import InvoiceNotFoundError
from .events import (
    PAYMENTS_EVENTS,
    EventKind,
    StripeEvent,
    classify,
    classify_invoice_status,
)
from .handlers.checkout_session import handle_checkout_session_event
from .handlers.invoice import insert_invoice_record
from .handlers.invoices import update_invoice_status
from .handlers.payment import insert_payment_record
from .handlers.price import insert_price_record
from .handlers.product import create_product_record, delete_product_or_price
from .handlers.subscription import manage_subscription_status_change
from .handlers.tax_rate import insert_tax_rate_record
from .handlers.common import object_id, to_plain
from .utils.security_logger import security_logger

logger = logging.getLogger("stripe_sync.dispatcher")

INVALID_SIGNATURE_BODY = "Webhook Error: Invalid Secret"
HANDLER_FAILED_BODY = {"error": "Webhook handler failed. View function logs in Firebase."}
RECEIVED_BODY = {"received": True}


@dataclass
class DispatchResult:
    status_code: int
    body: Union[Dict[str, Any], str]
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    handled: bool = False


class WebhookDispatcher:
    """Verifies, classifies and applies Stripe events for one deployment."""

    def __init__(
        self,
        ctx: SyncContext,
        relevant_events: FrozenSet[StripeEvent] = PAYMENTS_EVENTS,
        failure_status: int = 200,
    ):
        self.ctx = ctx
        self.relevant_events = relevant_events
        self.failure_status = failure_status
        self.handlers: Dict[EventKind, Callable[[StripeEvent, Dict[str, Any]], None]] = {
            EventKind.PRODUCT: self._handle_product,
            EventKind.PRICE: self._handle_price,
            EventKind.TAX_RATE: self._handle_tax_rate,
            EventKind.SUBSCRIPTION: self._handle_subscription,
            EventKind.CHECKOUT_SESSION: self._handle_checkout_session,
            EventKind.INVOICE: self._handle_invoice,
            EventKind.PAYMENT_INTENT: self._handle_payment_intent,
        }

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    @property
    def signing_secret(self) -> str:
        return self.ctx.settings.stripe_webhook_secret

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        event = self.ctx.stripe.Webhook.construct_event(payload, signature, self.signing_secret)
        return to_plain(event)

    def dispatch(self, payload: bytes, signature: Optional[str], ip: Optional[str] = None) -> DispatchResult:
        try:
            event = self.construct_event(payload, signature)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            logger.error("❗️ Webhook signature verification failed: %s", exc)
            security_logger.log_invalid_webhook_signature(ip=ip, reason=str(exc))
            return DispatchResult(401, INVALID_SIGNATURE_BODY)
        return self.handle_event(event)

    def handle_event(self, event: Dict[str, Any]) -> DispatchResult:
        event_id, event_type = event.get("id"), event.get("type")
        stripe_event = classify(event_type, self.relevant_events)
        if stripe_event is None:
            logger.debug("Ignoring Stripe event [%s] of type [%s]", event_id, event_type)
            return DispatchResult(200, RECEIVED_BODY, event_id, event_type)

        logger.info("⚙️ Handling Stripe event [%s] of type [%s]", event_id, event_type)
        obj = (event.get("data") or {}).get("object") or {}
        try:
            self.handlers[stripe_event.kind](stripe_event, obj)
        except Exception:
            logger.exception(
                "WEBHOOK_HANDLER_FAILED event_id=%s event_type=%s object_id=%s",
                event_id, event_type, obj.get("id"),
            )
            return DispatchResult(self.failure_status, HANDLER_FAILED_BODY, event_id, event_type)

        if self.ctx.events is not None:
            self.ctx.events.publish(event_type, obj)

        logger.info("✅ Webhook handler for Stripe event [%s] of type [%s] succeeded", event_id, event_type)
        return DispatchResult(200, RECEIVED_BODY, event_id, event_type, handled=True)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _handle_product(self, event: StripeEvent, obj: Dict[str, Any]) -> None:
        if event.is_deletion:
            delete_product_or_price(self.ctx, obj)
        else:
            create_product_record(self.ctx, obj)

    def _handle_price(self, event: StripeEvent, obj: Dict[str, Any]) -> None:
        if event.is_deletion:
            delete_product_or_price(self.ctx, obj)
        else:
            insert_price_record(self.ctx, obj)

    def _handle_tax_rate(self, event: StripeEvent, obj: Dict[str, Any]) -> None:
        insert_tax_rate_record(self.ctx, obj)

    def _handle_subscription(self, event: StripeEvent, obj: Dict[str, Any]) -> None:
        manage_subscription_status_change(
            self.ctx, obj["id"], object_id(obj.get("customer")), event.is_create
        )

    def _handle_checkout_session(self, event: StripeEvent, obj: Dict[str, Any]) -> None:
        handle_checkout_session_event(self.ctx, obj)

    def _handle_invoice(self, event: StripeEvent, obj: Dict[str, Any]) -> None:
        insert_invoice_record(self.ctx, obj)

    def _handle_payment_intent(self, event: StripeEvent, obj: Dict[str, Any]) -> None:
        insert_payment_record(self.ctx, obj)


class InvoiceWebhookDispatcher(WebhookDispatcher):
    """Status updates for invoices sent from the invoices collection.

    Unlike the mirror webhooks, failures answer 500 so Stripe retries.
    """

    NOT_FOUND_BODY = "Invoice not found."
    FAILED_BODY = "Webhook handler failed."

    def __init__(self, ctx: SyncContext):
        super().__init__(ctx, relevant_events=frozenset(), failure_status=500)

    @property
    def signing_secret(self) -> str:
        """The invoices endpoint's own secret, else the shared one."""
        settings = self.ctx.settings
        return settings.invoices_webhook_secret or settings.stripe_webhook_secret

    def handle_event(self, event: Dict[str, Any]) -> DispatchResult:
        event_id, event_type = event.get("id"), event.get("type")
        status_event = classify_invoice_status(event_type)
        if status_event is None:
            logger.debug("Ignoring Stripe event [%s] of type [%s]", event_id, event_type)
            return DispatchResult(200, RECEIVED_BODY, event_id, event_type)

        logger.info("⚙️ Updating invoice status for event [%s] of type [%s]", event_id, event_type)
        invoice = (event.get("data") or {}).get("object") or {}
        try:
            update_invoice_status(self.ctx, status_event, invoice)
        except InvoiceNotFoundError as exc:
            logger.error(
                "INVOICE_NOT_FOUND event_id=%s invoice_id=%s matches=%s",
                event_id, invoice.get("id"), exc.details.get("matches"),
            )
            return DispatchResult(self.failure_status, self.NOT_FOUND_BODY, event_id, event_type)
        except Exception:
            logger.exception("WEBHOOK_HANDLER_FAILED event_id=%s event_type=%s", event_id, event_type)
            return DispatchResult(self.failure_status, self.FAILED_BODY, event_id, event_type)
        return DispatchResult(200, RECEIVED_BODY, event_id, event_type, handled=True)
