"""Invoice mirror: ``customers/{uid}/subscriptions/{subId}/invoices/{invoiceId}``."""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import SyncContext
from .common import find_customer, object_id, price_refs, to_plain

logger = logging.getLogger("stripe_sync.handlers.invoice")


def insert_invoice_record(ctx: SyncContext, invoice: Dict[str, Any]) -> None:
    """Store the invoice under its subscription and link its prices to the payment."""
    customer = find_customer(ctx, object_id(invoice.get("customer")))

    subscription_id = object_id(invoice.get("subscription"))
    if subscription_id:
        (
            customer.reference
            .collection("subscriptions")
            .document(subscription_id)
            .collection("invoices")
            .document(invoice["id"])
            .set(to_plain(invoice))
        )
    else:
        logger.warning("Invoice %s has no subscription; only linking prices to the payment", invoice["id"])

    lines = (invoice.get("lines") or {}).get("data") or []
    prices = price_refs(ctx, lines)

    # Not every invoice has a payment intent
    record_id = object_id(invoice.get("payment_intent")) or invoice["id"]
    customer.reference.collection("payments").document(record_id).set({"prices": prices}, merge=True)
    logger.info("✅ Firestore document [invoices/%s] created/updated", invoice["id"])
