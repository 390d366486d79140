"""Subscription reconciliation.

Every subscription event triggers a full rebuild of
``customers/{uid}/subscriptions/{subId}`` from the subscription as Stripe
currently reports it, followed by an update of the user's ``stripeRole``
custom claim. Nothing is patched incrementally, so replayed or
out-of-order events converge on the same document.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from firebase_admin import auth as firebase_auth

from ..context import SyncContext
from ..errors import CustomerNotFoundError, MultipleCustomersError
from .common import ROLE_METADATA_KEY, dashboard_link, object_id, to_plain, to_timestamp
from .customer import copy_billing_details_to_customer

logger = logging.getLogger("stripe_sync.handlers.subscription")

SUBSCRIPTION_EXPAND = ["default_payment_method", "items.data.price.product"]
ROLE_GRANTING_STATUSES = ("trialing", "active")
ROLE_CLAIM = "stripeRole"

TIMESTAMP_FIELDS = (
    "cancel_at",
    "canceled_at",
    "current_period_start",
    "current_period_end",
    "created",
    "ended_at",
    "trial_start",
    "trial_end",
)


def ordered_items(subscription: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Subscription items with the primary item first.

    Items keep Stripe's order, stably sorted by ``created`` when every item
    carries one.
    """
    items = list(((subscription.get("items") or {}).get("data")) or [])
    if items and all(item.get("created") is not None for item in items):
        items = sorted(items, key=lambda item: item["created"])
    return items


def role_for_product(product: Any) -> Optional[str]:
    if not isinstance(product, dict):
        return None
    return (product.get("metadata") or {}).get(ROLE_METADATA_KEY)


class SubscriptionReconciler:
    """Rebuilds one subscription mirror and the owner's role claim."""

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx

    # -------------------------------------------------------------------------
    # Document
    # -------------------------------------------------------------------------

    def build_document(self, subscription: Dict[str, Any]) -> Dict[str, Any]:
        items = ordered_items(subscription)
        if not items:
            raise ValueError(f"Subscription {subscription.get('id')} has no items")

        primary = items[0]
        price = primary["price"]
        product_id = object_id(price.get("product"))
        role = role_for_product(price.get("product"))

        data = {
            "metadata": to_plain(subscription.get("metadata") or {}),
            "role": role,
            "status": subscription.get("status"),
            "stripeLink": dashboard_link("subscriptions", subscription["id"], bool(subscription.get("livemode"))),
            "product": self.ctx.product_ref(product_id),
            "price": self.ctx.price_ref(product_id, price["id"]),
            "prices": [
                self.ctx.price_ref(object_id(item["price"].get("product")), item["price"]["id"])
                for item in items
            ],
            "quantity": primary.get("quantity"),
            "items": to_plain(items),
            "cancel_at_period_end": subscription.get("cancel_at_period_end"),
        }
        for field in TIMESTAMP_FIELDS:
            data[field] = to_timestamp(subscription.get(field))
        return data

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def reconcile(self, subscription_id: str, customer_id: str, create_action: bool = False) -> Optional[Dict[str, Any]]:
        """Mirror the subscription and refresh the role claim.

        Returns the written document, or None when the event refers to a
        customer whose records were already cleaned up.

        Raises:
            CustomerNotFoundError / MultipleCustomersError when the Stripe
            customer does not map to exactly one customer document
        """
        matches = list(
            self.ctx.customers().where("stripeId", "==", customer_id).get()
        )
        if len(matches) > 1:
            raise MultipleCustomersError(
                f"{len(matches)} customer records match {customer_id}",
                details={"stripeId": customer_id, "subscriptionId": subscription_id},
            )

        subscription = to_plain(
            self.ctx.stripe.Subscription.retrieve(subscription_id, expand=SUBSCRIPTION_EXPAND)
        )

        if not matches:
            if subscription.get("canceled_at") or subscription.get("ended_at"):
                logger.info(
                    "Subscription %s is canceled and customer %s has no record; nothing to sync",
                    subscription_id, customer_id,
                )
                return None
            raise CustomerNotFoundError(
                "User not found!",
                details={"stripeId": customer_id, "subscriptionId": subscription_id},
            )

        customer = matches[0]
        uid = customer.id
        sub_ref = customer.reference.collection("subscriptions").document(subscription["id"])

        already_exists = create_action and sub_ref.get().exists

        data = self.build_document(subscription)
        sub_ref.set(data)
        logger.info("✅ Firestore document [subscriptions/%s] created/updated", subscription["id"])

        if not self.update_role_claim(uid, data["role"], data["status"]):
            return data

        # Runs last; the subscription document is already committed
        payment_method = subscription.get("default_payment_method")
        if create_action and not already_exists and isinstance(payment_method, dict):
            try:
                copy_billing_details_to_customer(self.ctx, payment_method)
            except Exception:
                logger.exception(
                    "Copying billing details failed subscription=%s customer=%s",
                    subscription_id, customer_id,
                )
        return data

    def update_role_claim(self, uid: str, role: Optional[str], status: str) -> bool:
        """Set ``stripeRole`` for granting statuses, clear it otherwise.

        Returns False when the user no longer exists.
        """
        new_role = role if status in ROLE_GRANTING_STATUSES else None
        try:
            user = self.ctx.auth.get_user(uid)
            claims = dict(user.custom_claims or {})
            claims[ROLE_CLAIM] = new_role
            self.ctx.auth.set_custom_user_claims(uid, claims)
        except firebase_auth.UserNotFoundError:
            logger.info("User %s no longer exists; skipping %s claim", uid, ROLE_CLAIM)
            return False
        logger.info("⚙️ Custom claim [%s] set to [%s] for user [%s]", ROLE_CLAIM, new_role, uid)
        return True


def manage_subscription_status_change(
    ctx: SyncContext,
    subscription_id: str,
    customer_id: str,
    create_action: bool = False,
) -> Optional[Dict[str, Any]]:
    return SubscriptionReconciler(ctx).reconcile(subscription_id, customer_id, create_action)
