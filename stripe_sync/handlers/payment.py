"""Payment mirror: ``customers/{uid}/payments/{paymentIntentId}``."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..context import SyncContext
from .common import find_customer, object_id, price_refs, to_plain

logger = logging.getLogger("stripe_sync.handlers.payment")


def insert_payment_record(
    ctx: SyncContext,
    payment: Dict[str, Any],
    checkout_session: Optional[Dict[str, Any]] = None,
) -> None:
    """Merge the payment intent into the customer's payments.

    When the payment came from a checkout session the session's line items
    are listed so the record carries ``prices`` and ``items``.
    """
    customer = find_customer(ctx, object_id(payment.get("customer")))

    data = to_plain(payment)
    if checkout_session:
        line_items = to_plain(ctx.stripe.checkout.Session.list_line_items(checkout_session["id"]))
        items = to_plain(line_items.get("data") or [])
        data["prices"] = price_refs(ctx, items)
        data["items"] = items

    customer.reference.collection("payments").document(payment["id"]).set(data, merge=True)
    logger.info("✅ Firestore document [payments/%s] created/updated", payment["id"])
