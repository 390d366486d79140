"""Product mirror: ``products/{productId}``."""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import SyncContext
from .common import object_id, prefix_metadata, split_role, to_plain

logger = logging.getLogger("stripe_sync.handlers.product")


def build_product_data(product: Dict[str, Any]) -> Dict[str, Any]:
    role, metadata = split_role(product.get("metadata"))
    return {
        "active": product.get("active"),
        "name": product.get("name"),
        "description": product.get("description"),
        "role": role,
        "images": to_plain(product.get("images") or []),
        "metadata": to_plain(product.get("metadata") or {}),
        "tax_code": product.get("tax_code"),
        **prefix_metadata(to_plain(metadata)),
    }


def create_product_record(ctx: SyncContext, product: Dict[str, Any]) -> None:
    """Create or update the product mirror (merge)."""
    ctx.product_ref(product["id"]).set(build_product_data(product), merge=True)
    logger.info("✅ Firestore document [%s/%s] created/updated", ctx.settings.products_collection, product["id"])


def delete_product_or_price(ctx: SyncContext, obj: Dict[str, Any]) -> None:
    """Delete the product or price mirror named by ``obj['object']``.

    Deleting a product leaves its prices in place; each price deletion
    arrives as its own event.
    """
    kind = obj.get("object")
    if kind == "product":
        ctx.product_ref(obj["id"]).delete()
        logger.info("🗑️ Firestore document [%s/%s] deleted", ctx.settings.products_collection, obj["id"])
    elif kind == "price":
        ctx.price_ref(object_id(obj.get("product")), obj["id"]).delete()
        logger.info("🗑️ Firestore document [prices/%s] deleted", obj["id"])
    else:
        logger.warning("Ignoring delete for unsupported object type %s (%s)", kind, obj.get("id"))
