"""Helpers shared by the record mappers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import stripe

from ..context import SyncContext
from ..errors import CustomerNotFoundError, MultipleCustomersError

logger = logging.getLogger("stripe_sync.handlers")

METADATA_PREFIX = "stripe_metadata_"
ROLE_METADATA_KEY = "firebaseRole"
DASHBOARD_URL = "https://dashboard.stripe.com"


def prefix_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """``{"tier": "gold"}`` -> ``{"stripe_metadata_tier": "gold"}``."""
    return {f"{METADATA_PREFIX}{key}": value for key, value in (metadata or {}).items()}


def split_role(metadata: Optional[Dict[str, Any]]):
    """Return ``(role, remaining_metadata)`` with the reserved role key removed."""
    remaining = dict(metadata or {})
    role = remaining.pop(ROLE_METADATA_KEY, None)
    return role, remaining


def dashboard_link(resource: str, object_id: str, livemode: bool) -> str:
    return f"{DASHBOARD_URL}{'' if livemode else '/test'}/{resource}/{object_id}"


def to_timestamp(epoch_seconds: Optional[int]) -> Optional[datetime]:
    """Stripe epoch seconds -> aware datetime (stored as a Firestore timestamp)."""
    if not epoch_seconds:
        return None
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)


def to_plain(value: Any) -> Any:
    """Recursively turn Stripe objects into plain dicts and lists.

    Every SDK result passes through here before handlers read it; current
    ``StripeObject`` releases are not ``dict`` subclasses.
    """
    if isinstance(value, stripe.StripeObject):
        to_dict = getattr(value, "to_dict", None) or value.to_dict_recursive
        value = to_dict()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    return value


def object_id(value: Any) -> Optional[str]:
    """ID of a field that is either a bare id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


def price_refs(ctx: SyncContext, line_items: List[Dict[str, Any]]) -> List[Any]:
    """Price document references for invoice lines, checkout line items or subscription items."""
    refs = []
    for item in line_items:
        price = item.get("price")
        if not price:
            continue
        refs.append(ctx.price_ref(object_id(price.get("product")), price["id"]))
    return refs


def find_customer(ctx: SyncContext, stripe_customer_id: Optional[str]):
    """Return the single customer snapshot mirroring ``stripe_customer_id``.

    Raises:
        CustomerNotFoundError if no customer document matches
        MultipleCustomersError if more than one matches
    """
    snaps = list(
        ctx.customers().where("stripeId", "==", stripe_customer_id).get()
    )
    if not snaps:
        raise CustomerNotFoundError(
            "User not found!", details={"stripeId": stripe_customer_id}
        )
    if len(snaps) > 1:
        raise MultipleCustomersError(
            f"{len(snaps)} customer records match {stripe_customer_id}",
            details={"stripeId": stripe_customer_id, "matches": [s.id for s in snaps]},
        )
    return snaps[0]
