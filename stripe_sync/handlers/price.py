"""Price mirror: ``products/{productId}/prices/{priceId}``."""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import SyncContext
from .common import object_id, prefix_metadata, to_plain

logger = logging.getLogger("stripe_sync.handlers.price")


def build_price_data(price: Dict[str, Any]) -> Dict[str, Any]:
    recurring = price.get("recurring") or {}
    return {
        "active": price.get("active"),
        "billing_scheme": price.get("billing_scheme"),
        "tiers_mode": price.get("tiers_mode"),
        "tiers": to_plain(price.get("tiers")),
        "currency": price.get("currency"),
        "description": price.get("nickname"),
        "type": price.get("type"),
        "unit_amount": price.get("unit_amount"),
        "recurring": to_plain(price.get("recurring")),
        "interval": recurring.get("interval"),
        "interval_count": recurring.get("interval_count"),
        "trial_period_days": recurring.get("trial_period_days"),
        "transform_quantity": to_plain(price.get("transform_quantity")),
        "tax_behavior": price.get("tax_behavior"),
        "metadata": to_plain(price.get("metadata") or {}),
        "product": object_id(price.get("product")),
        **prefix_metadata(to_plain(price.get("metadata"))),
    }


def insert_price_record(ctx: SyncContext, price: Dict[str, Any]) -> None:
    """Create or update the price mirror (merge).

    Webhook payloads never carry tiers, so tiered prices are fetched again
    with ``tiers`` expanded before mapping.
    """
    if price.get("billing_scheme") == "tiered":
        price = to_plain(ctx.stripe.Price.retrieve(price["id"], expand=["tiers"]))

    product_id = object_id(price.get("product"))
    ctx.price_ref(product_id, price["id"]).set(build_price_data(price), merge=True)
    logger.info("✅ Firestore document [prices/%s] created/updated", price["id"])
