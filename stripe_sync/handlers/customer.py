"""Customer lifecycle: ``customers/{uid}`` <-> Stripe customers.

Two call sites may create the Stripe customer for a brand-new user (the
user-created trigger and the lazy path in checkout/portal). Both go through
``create_customer_record``, which uses a uid-derived idempotency key with
Stripe and a conditional write in Firestore so a user ends up with at most
one Stripe customer.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from google.api_core.exceptions import AlreadyExists, FailedPrecondition
from google.cloud import firestore

from ..context import SyncContext
from .common import dashboard_link, object_id, to_plain

logger = logging.getLogger("stripe_sync.handlers.customer")

CANCELABLE_STATUSES = ["trialing", "active"]


def customer_idempotency_key(uid: str) -> str:
    return f"customer-create-{uid}"


# =============================================================================
# CREATE
# =============================================================================

def create_customer_record(
    ctx: SyncContext,
    uid: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
) -> Dict[str, Any]:
    """Ensure ``customers/{uid}`` is linked to a Stripe customer.

    Returns the customer record (existing or newly written).
    """
    ref = ctx.customers().document(uid)
    snap = ref.get()
    existing = (snap.to_dict() or {}) if snap.exists else {}
    if existing.get("stripeId"):
        return existing

    logger.info("⚙️ Creating customer object for [%s]", uid)
    params: Dict[str, Any] = {"metadata": {"firebaseUID": uid}}
    if email:
        params["email"] = email
    if phone:
        params["phone"] = phone
    customer = to_plain(ctx.stripe.Customer.create(idempotency_key=customer_idempotency_key(uid), **params))

    record = {
        "email": customer.get("email"),
        "stripeId": customer["id"],
        "stripeLink": dashboard_link("customers", customer["id"], bool(customer.get("livemode"))),
    }
    if phone:
        record["phone"] = phone

    record = _write_if_unclaimed(ctx, ref, snap, record)
    logger.info(
        "✅ Created a new customer: %s",
        dashboard_link("customers", record["stripeId"], bool(customer.get("livemode"))),
    )
    return record


def _write_if_unclaimed(ctx: SyncContext, ref, snap, record: Dict[str, Any]) -> Dict[str, Any]:
    """Write ``record`` unless another writer linked a Stripe customer first."""
    try:
        if snap.exists:
            ref.update(record, option=ctx.db.write_option(last_update_time=snap.update_time))
        else:
            ref.create(record)
        return record
    except (AlreadyExists, FailedPrecondition):
        current = ref.get().to_dict() or {}
        if current.get("stripeId"):
            logger.info("Customer record for %s was linked concurrently; keeping %s", ref.id, current["stripeId"])
            return current
        ref.set(record, merge=True)
        return record


def copy_billing_details_to_customer(ctx: SyncContext, payment_method: Dict[str, Any]) -> None:
    """Copy name, phone and address from a payment method onto its Stripe customer."""
    customer_id = object_id(payment_method.get("customer"))
    details = payment_method.get("billing_details") or {}
    update = {
        key: to_plain(details.get(key))
        for key in ("name", "phone", "address")
        if details.get(key) is not None
    }
    if not customer_id or not update:
        return
    ctx.stripe.Customer.modify(customer_id, **update)


# =============================================================================
# DELETE
# =============================================================================

def delete_stripe_customer(ctx: SyncContext, uid: str, stripe_id: str) -> None:
    """Delete the Stripe customer and mark live subscriptions canceled.

    Stripe cancels the subscriptions itself and will also send
    ``customer.subscription.deleted``; both paths end in the same state.
    """
    try:
        ctx.stripe.Customer.delete(stripe_id)
        logger.info("✅ Deleted Stripe customer [%s] for user [%s]", stripe_id, uid)

        update = {"status": "canceled", "ended_at": firestore.SERVER_TIMESTAMP}
        subscriptions = (
            ctx.customers()
            .document(uid)
            .collection("subscriptions")
            .where("status", "in", CANCELABLE_STATUSES)
            .get()
        )
        for sub in subscriptions:
            sub.reference.set(update, merge=True)
    except Exception:
        logger.exception("Error deleting Stripe customer [%s] for user [%s]", stripe_id, uid)
        raise


# =============================================================================
# TRIGGERS
# =============================================================================

def on_user_created(ctx: SyncContext, uid: str, email: Optional[str] = None, phone: Optional[str] = None) -> Optional[Dict[str, Any]]:
    if not ctx.settings.sync_users_on_create:
        return None
    return create_customer_record(ctx, uid, email=email, phone=phone)


def on_user_deleted(ctx: SyncContext, uid: str) -> bool:
    """Clean up after an Auth user is deleted. Returns True if Stripe was called."""
    if not ctx.settings.auto_delete_users:
        return False
    snap = ctx.customers().document(uid).get()
    if not snap.exists:
        # The customer document may already be gone (e.g. user data deletion)
        logger.info("No customer record for deleted user %s", uid)
        return False
    stripe_id = (snap.to_dict() or {}).get("stripeId")
    if not stripe_id:
        return False
    delete_stripe_customer(ctx, uid, stripe_id)
    return True


def on_customer_data_deleted(ctx: SyncContext, uid: str, data: Dict[str, Any]) -> bool:
    """Clean up after ``customers/{uid}`` itself is deleted."""
    if not ctx.settings.auto_delete_users:
        return False
    stripe_id = (data or {}).get("stripeId")
    if not stripe_id:
        return False
    delete_stripe_customer(ctx, uid, stripe_id)
    return True
