"""Stripe event classification.

Every event type a deployment may handle is a member of ``StripeEvent``;
each deployment declares the subset it reacts to as a frozenset of members
(``PAYMENTS_EVENTS``, ``SUBSCRIPTIONS_EVENTS``). Anything outside the set
is acknowledged and ignored.
"""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Optional


class EventKind(Enum):
    PRODUCT = "product"
    PRICE = "price"
    TAX_RATE = "tax_rate"
    CHECKOUT_SESSION = "checkout_session"
    SUBSCRIPTION = "subscription"
    INVOICE = "invoice"
    PAYMENT_INTENT = "payment_intent"


class StripeEvent(str, Enum):
    PRODUCT_CREATED = "product.created"
    PRODUCT_UPDATED = "product.updated"
    PRODUCT_DELETED = "product.deleted"
    PRICE_CREATED = "price.created"
    PRICE_UPDATED = "price.updated"
    PRICE_DELETED = "price.deleted"
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
    CHECKOUT_SESSION_ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    TAX_RATE_CREATED = "tax_rate.created"
    TAX_RATE_UPDATED = "tax_rate.updated"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    INVOICE_UPCOMING = "invoice.upcoming"
    INVOICE_MARKED_UNCOLLECTIBLE = "invoice.marked_uncollectible"
    INVOICE_PAYMENT_ACTION_REQUIRED = "invoice.payment_action_required"
    PAYMENT_INTENT_PROCESSING = "payment_intent.processing"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_CANCELED = "payment_intent.canceled"
    PAYMENT_INTENT_PAYMENT_FAILED = "payment_intent.payment_failed"

    @property
    def kind(self) -> EventKind:
        prefix = self.value.rsplit(".", 1)[0]
        return _KIND_BY_PREFIX[prefix]

    @property
    def is_deletion(self) -> bool:
        return self.value.endswith(".deleted") and self.kind in (EventKind.PRODUCT, EventKind.PRICE)

    @property
    def is_create(self) -> bool:
        return self is StripeEvent.SUBSCRIPTION_CREATED


_KIND_BY_PREFIX = {
    "product": EventKind.PRODUCT,
    "price": EventKind.PRICE,
    "tax_rate": EventKind.TAX_RATE,
    "checkout.session": EventKind.CHECKOUT_SESSION,
    "customer.subscription": EventKind.SUBSCRIPTION,
    "invoice": EventKind.INVOICE,
    "payment_intent": EventKind.PAYMENT_INTENT,
}


# Full payments deployment
PAYMENTS_EVENTS: FrozenSet[StripeEvent] = frozenset(StripeEvent)

# Subscriptions-only deployment
SUBSCRIPTIONS_EVENTS: FrozenSet[StripeEvent] = frozenset({
    StripeEvent.PRODUCT_CREATED,
    StripeEvent.PRODUCT_UPDATED,
    StripeEvent.PRODUCT_DELETED,
    StripeEvent.PRICE_CREATED,
    StripeEvent.PRICE_UPDATED,
    StripeEvent.PRICE_DELETED,
    StripeEvent.CHECKOUT_SESSION_COMPLETED,
    StripeEvent.SUBSCRIPTION_CREATED,
    StripeEvent.SUBSCRIPTION_UPDATED,
    StripeEvent.SUBSCRIPTION_DELETED,
    StripeEvent.TAX_RATE_CREATED,
    StripeEvent.TAX_RATE_UPDATED,
})


class InvoiceStatusEvent(str, Enum):
    """Events tracked for invoices sent through the invoices collection."""

    CREATED = "invoice.created"
    FINALIZED = "invoice.finalized"
    PAYMENT_FAILED = "invoice.payment_failed"
    PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    PAYMENT_ACTION_REQUIRED = "invoice.payment_action_required"
    VOIDED = "invoice.voided"
    MARKED_UNCOLLECTIBLE = "invoice.marked_uncollectible"


INVOICE_STATUS_EVENTS: FrozenSet[InvoiceStatusEvent] = frozenset(InvoiceStatusEvent)


def classify(event_type: str, relevant: FrozenSet[StripeEvent]) -> Optional[StripeEvent]:
    """Return the handled event for ``event_type`` or None when it is ignored."""
    try:
        event = StripeEvent(event_type)
    except ValueError:
        return None
    return event if event in relevant else None


def classify_invoice_status(event_type: str) -> Optional[InvoiceStatusEvent]:
    try:
        return InvoiceStatusEvent(event_type)
    except ValueError:
        return None
