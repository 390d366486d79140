"""Checkout sessions.

Two directions:
- ``create_checkout_session``: a client writes
  ``customers/{uid}/checkout_sessions/{id}``; we create the Stripe Checkout
  Session (web) or intents plus an ephemeral key (mobile) and write the
  identifiers back onto that document.
- ``handle_checkout_session_event``: Stripe reports the session finished;
  we reconcile the subscription or record the payment.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from google.cloud import firestore

from ..context import SyncContext
from ..errors import StripeSyncError, UnsupportedClientError
from .common import find_customer, object_id, to_plain
from .customer import create_customer_record
from .payment import insert_payment_record
from .subscription import manage_subscription_status_change

logger = logging.getLogger("stripe_sync.handlers.checkout_session")

CHECKOUT_DEFAULTS: Dict[str, Any] = {
    "client": "web",
    "mode": "subscription",
    "quantity": 1,
    "shipping_rates": [],
    "metadata": {},
    "automatic_payment_methods": {"enabled": True},
    "automatic_tax": False,
    "invoice_creation": False,
    "tax_rates": [],
    "tax_id_collection": False,
    "allow_promotion_codes": False,
    "billing_address_collection": "required",
    "collect_shipping_address": False,
    "customer_update": {},
    "locale": "auto",
    "after_expiration": {},
    "consent_collection": {},
    "phone_number_collection": {},
    "payment_method_collection": "always",
}

# Fields we write back; a document carrying any of them was already handled
RESULT_FIELDS = ("sessionId", "url", "error", "ephemeralKeySecret", "created")


def with_defaults(request: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(CHECKOUT_DEFAULTS)
    merged.update({key: value for key, value in request.items() if value is not None})
    return merged


def is_processed(request: Dict[str, Any]) -> bool:
    return any(request.get(field) for field in RESULT_FIELDS)


# =============================================================================
# SESSION CREATION
# =============================================================================

def shipping_countries(ctx: SyncContext) -> List[str]:
    snap = ctx.config_collection().document("shipping_countries").get()
    if not snap.exists:
        return []
    return list((snap.to_dict() or {}).get("allowed_countries") or [])


def build_web_session_params(ctx: SyncContext, request: Dict[str, Any], customer: str) -> Dict[str, Any]:
    """Stripe Checkout Session parameters for a web checkout request."""
    mode = request["mode"]
    customer_update = dict(request["customer_update"])
    params: Dict[str, Any] = {
        "billing_address_collection": request["billing_address_collection"],
        "shipping_rates": request["shipping_rates"],
        "customer": customer,
        "line_items": request.get("line_items") or [
            {"price": request.get("price"), "quantity": request["quantity"]}
        ],
        "mode": mode,
        "success_url": request.get("success_url"),
        "cancel_url": request.get("cancel_url"),
        "locale": request["locale"],
        "after_expiration": request["after_expiration"],
        "consent_collection": request["consent_collection"],
        "phone_number_collection": request["phone_number_collection"],
    }
    if request["collect_shipping_address"]:
        params["shipping_address_collection"] = {"allowed_countries": shipping_countries(ctx)}
    if request.get("expires_at"):
        params["expires_at"] = request["expires_at"]
    if request.get("payment_method_types"):
        params["payment_method_types"] = request["payment_method_types"]

    if mode == "subscription":
        params["payment_method_collection"] = request["payment_method_collection"]
        subscription_data: Dict[str, Any] = {"metadata": request["metadata"]}
        if request.get("trial_period_days"):
            subscription_data["trial_period_days"] = request["trial_period_days"]
        if not request["automatic_tax"]:
            subscription_data["default_tax_rates"] = request["tax_rates"]
        params["subscription_data"] = subscription_data
    elif mode == "payment":
        payment_intent_data: Dict[str, Any] = {"metadata": request["metadata"]}
        if request.get("setup_future_usage"):
            payment_intent_data["setup_future_usage"] = request["setup_future_usage"]
        params["payment_intent_data"] = payment_intent_data
        if request["invoice_creation"]:
            params["invoice_creation"] = {"enabled": True}

    if request["automatic_tax"]:
        params["automatic_tax"] = {"enabled": True}
    if request["tax_id_collection"]:
        params["tax_id_collection"] = {"enabled": True}
    if request["automatic_tax"] or request["tax_id_collection"]:
        customer_update.update({"name": "auto", "address": "auto", "shipping": "auto"})
    params["customer_update"] = customer_update

    if request.get("promotion_code"):
        params["discounts"] = [{"promotion_code": request["promotion_code"]}]
    else:
        params["allow_promotion_codes"] = request["allow_promotion_codes"]
    if request.get("client_reference_id"):
        params["client_reference_id"] = request["client_reference_id"]
    return params


def _create_web_session(ctx: SyncContext, request: Dict[str, Any], customer: str, doc_id: str) -> Dict[str, Any]:
    params = build_web_session_params(ctx, request, customer)
    session = to_plain(ctx.stripe.checkout.Session.create(idempotency_key=doc_id, **params))
    return {
        "client": request["client"],
        "mode": request["mode"],
        "sessionId": session["id"],
        "url": session.get("url"),
        "created": firestore.SERVER_TIMESTAMP,
    }


def _create_mobile_session(ctx: SyncContext, request: Dict[str, Any], customer: str, doc_id: str) -> Dict[str, Any]:
    mode = request["mode"]
    payment_intent_secret = None
    setup_intent_secret = None

    if mode == "payment":
        if not request.get("amount") or not request.get("currency"):
            raise StripeSyncError(
                "When using 'client:mobile' and 'mode:payment' you must specify amount and currency!"
            )
        params: Dict[str, Any] = {
            "amount": request["amount"],
            "currency": request["currency"],
            "customer": customer,
            "metadata": request["metadata"],
        }
        if request.get("setup_future_usage"):
            params["setup_future_usage"] = request["setup_future_usage"]
        if request.get("payment_method_types"):
            params["payment_method_types"] = request["payment_method_types"]
        else:
            params["automatic_payment_methods"] = request["automatic_payment_methods"]
        payment_intent = to_plain(ctx.stripe.PaymentIntent.create(**params))
        payment_intent_secret = payment_intent["client_secret"]
    elif mode == "setup":
        setup_intent = to_plain(ctx.stripe.SetupIntent.create(
            customer=customer,
            metadata=request["metadata"],
            payment_method_types=request.get("payment_method_types") or ["card"],
        ))
        setup_intent_secret = setup_intent["client_secret"]
    elif mode == "subscription":
        params = {
            "customer": customer,
            "items": [{"price": request.get("price")}],
            "payment_behavior": "default_incomplete",
            "expand": ["latest_invoice.payment_intent"],
            "metadata": {"firebaseUserUID": doc_id},
        }
        if request.get("trial_period_days"):
            params["trial_period_days"] = request["trial_period_days"]
        subscription = to_plain(ctx.stripe.Subscription.create(**params))
        payment_intent = (subscription.get("latest_invoice") or {}).get("payment_intent") or {}
        payment_intent_secret = payment_intent.get("client_secret")
    else:
        raise StripeSyncError(f"Mode '{mode}' is not supported for 'client:mobile'!")

    ephemeral_key = to_plain(ctx.stripe.EphemeralKey.create(
        customer=customer,
        stripe_version=ctx.settings.stripe_api_version,
    ))
    return {
        "client": request["client"],
        "mode": mode,
        "customer": customer,
        "created": firestore.SERVER_TIMESTAMP,
        "ephemeralKeySecret": ephemeral_key["secret"],
        "paymentIntentClientSecret": payment_intent_secret,
        "setupIntentClientSecret": setup_intent_secret,
    }


def create_checkout_session(ctx: SyncContext, snapshot) -> Optional[Dict[str, Any]]:
    """Handle a new ``checkout_sessions`` document.

    Any failure is written back as ``{"error": {"message": ...}}`` because
    the client is listening to this document.
    """
    doc_ref = snapshot.reference
    doc_id = snapshot.id
    request = with_defaults(snapshot.to_dict() or {})
    try:
        logger.info("⚙️ Creating checkout session for doc [%s]", doc_id)
        customer_ref = doc_ref.parent.parent
        if customer_ref is None:
            raise StripeSyncError("Invalid document reference, no parent collection found")
        uid = customer_ref.id

        customer_snap = customer_ref.get()
        customer_record = (customer_snap.to_dict() or {}) if customer_snap.exists else {}
        if not customer_record.get("stripeId"):
            user = ctx.auth.get_user(uid)
            customer_record = create_customer_record(
                ctx, uid, email=user.email, phone=user.phone_number
            )
        customer = customer_record["stripeId"]

        if request["client"] == "web":
            result = _create_web_session(ctx, request, customer, doc_id)
        elif request["client"] == "mobile":
            result = _create_mobile_session(ctx, request, customer, doc_id)
        else:
            raise UnsupportedClientError(
                f"Client {request['client']} is not supported. Only 'web' or 'mobile' is supported!"
            )

        doc_ref.set(result, merge=True)
        logger.info("✅ Checkout session created for doc [%s]", doc_id)
        return result
    except Exception as exc:
        logger.exception("Checkout session creation failed for doc [%s]", doc_id)
        doc_ref.set({"error": {"message": str(getattr(exc, "user_message", None) or exc)}}, merge=True)
        return None


# =============================================================================
# WEBHOOK
# =============================================================================

def handle_checkout_session_event(ctx: SyncContext, session: Dict[str, Any]) -> None:
    """Apply a completed (or async-settled) checkout session."""
    customer_id = object_id(session.get("customer"))
    if session.get("mode") == "subscription":
        manage_subscription_status_change(
            ctx, object_id(session.get("subscription")), customer_id, True
        )
    else:
        payment_intent = to_plain(ctx.stripe.PaymentIntent.retrieve(object_id(session.get("payment_intent"))))
        insert_payment_record(ctx, payment_intent, session)

    if (session.get("tax_id_collection") or {}).get("enabled"):
        customer = find_customer(ctx, customer_id)
        customer.reference.set(to_plain(session.get("customer_details") or {}), merge=True)
