"""Sending invoices from the ``invoices`` collection and tracking their status.

A document ``invoices/{id}`` with either ``email`` or ``uid`` and a list of
``items`` becomes a Stripe invoice emailed to that customer. Stripe invoice
events later update ``stripeInvoiceStatus`` on the same document.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..context import SyncContext
from ..errors import InvoiceNotFoundError, StripeSyncError
from ..events import InvoiceStatusEvent
from .common import dashboard_link, to_plain

logger = logging.getLogger("stripe_sync.handlers.invoices")

RESULT_FIELDS = ("stripeInvoiceId", "error")


def is_processed(payload: Dict[str, Any]) -> bool:
    return any(payload.get(field) for field in RESULT_FIELDS)


def validate_payload(payload: Dict[str, Any]) -> Optional[str]:
    """Return a reason string when the payload cannot be invoiced."""
    email, uid = payload.get("email"), payload.get("uid")
    if email and uid:
        return "Only one of email or uid may be set"
    if not (email or uid):
        return "One of email or uid is required"
    items = payload.get("items") or []
    if not items:
        return "At least one item is required"
    for item in items:
        if not item.get("amount") or not item.get("currency") or not item.get("description"):
            return "Each item needs amount, currency and description"
    return None


def find_or_create_customer(ctx: SyncContext, email: str, currency: str, idempotency_key: str) -> Dict[str, Any]:
    """Reuse the customer with this email billed in ``currency``, else create one."""
    customers = to_plain(ctx.stripe.Customer.list(email=email))
    for customer in customers.get("data") or []:
        if customer.get("currency") == currency:
            logger.info("Retrieved existing customer %s", customer["id"])
            return customer
    customer = to_plain(ctx.stripe.Customer.create(
        email=email,
        metadata={"createdBy": "Created by stripe-sync send invoices"},
        idempotency_key=f"customers-create-{idempotency_key}",
    ))
    logger.info("✅ Created a new customer: %s", dashboard_link("customers", customer["id"], bool(customer.get("livemode"))))
    return customer


def create_invoice(
    ctx: SyncContext,
    customer: Dict[str, Any],
    items: List[Dict[str, Any]],
    days_until_due: int,
    idempotency_key: str,
    default_tax_rates: Optional[List[str]] = None,
    transfer_data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    for index, item in enumerate(items):
        ctx.stripe.InvoiceItem.create(
            customer=customer["id"],
            unit_amount=item["amount"],
            currency=item["currency"],
            quantity=item.get("quantity") or 1,
            description=item["description"],
            tax_rates=item.get("tax_rates") or [],
            idempotency_key=f"invoiceItems-create-{idempotency_key}-{index}",
        )

    params: Dict[str, Any] = {
        "customer": customer["id"],
        "collection_method": "send_invoice",
        "days_until_due": days_until_due,
        "auto_advance": True,
        "default_tax_rates": default_tax_rates or [],
        # Include the invoice items created above
        "pending_invoice_items_behavior": "include",
    }
    if transfer_data:
        params["transfer_data"] = transfer_data
    invoice = to_plain(ctx.stripe.Invoice.create(idempotency_key=f"invoices-create-{idempotency_key}", **params))
    logger.info("✅ Created invoice %s", dashboard_link("invoices", invoice["id"], bool(invoice.get("livemode"))))
    return invoice


def send_invoice(ctx: SyncContext, snapshot, idempotency_key: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Create and email the invoice described by ``invoices/{id}``.

    Returns the fields written back onto the document, or None when the
    payload was rejected or sending failed.
    """
    payload = snapshot.to_dict() or {}
    idempotency_key = idempotency_key or snapshot.id
    reason = validate_payload(payload)
    if reason:
        logger.error("Invalid invoice payload [%s]: %s", snapshot.id, reason)
        snapshot.reference.set({"error": {"message": reason}}, merge=True)
        return None

    try:
        logger.info("⚙️ Creating invoice for doc [%s]", snapshot.id)
        if payload.get("uid"):
            email = ctx.auth.get_user(payload["uid"]).email
            if not email:
                raise StripeSyncError(f"User {payload['uid']} has no email address")
        else:
            email = payload["email"]

        items = payload["items"]
        customer = find_or_create_customer(ctx, email, items[0]["currency"], idempotency_key)
        invoice = create_invoice(
            ctx,
            customer,
            items,
            days_until_due=payload.get("daysUntilDue") or ctx.settings.days_until_due,
            idempotency_key=idempotency_key,
            default_tax_rates=payload.get("default_tax_rates"),
            transfer_data=payload.get("transfer_data"),
        )

        sent = to_plain(ctx.stripe.Invoice.send_invoice(invoice["id"], idempotency_key=f"invoices-sendInvoice-{idempotency_key}"))
        if sent.get("status") == "open":
            logger.info("✅ Sent invoice %s to %s", sent["id"], email)
        else:
            logger.error("Invoice %s was not opened after sending (status=%s)", sent["id"], sent.get("status"))

        result = {
            "stripeInvoiceId": sent["id"],
            "stripeInvoiceUrl": sent.get("hosted_invoice_url"),
            "stripeInvoiceRecord": dashboard_link("invoices", sent["id"], bool(invoice.get("livemode"))),
        }
        snapshot.reference.update(result)
        return result
    except Exception as exc:
        logger.exception("Sending invoice failed for doc [%s]", snapshot.id)
        snapshot.reference.set({"error": {"message": str(exc)}}, merge=True)
        return None


def update_invoice_status(ctx: SyncContext, event: InvoiceStatusEvent, invoice: Dict[str, Any]) -> str:
    """Record the invoice status on the single matching invoice document.

    Raises:
        InvoiceNotFoundError unless exactly one document has this invoice id
    """
    matches = list(ctx.invoices().where("stripeInvoiceId", "==", invoice["id"]).get())
    if len(matches) != 1:
        raise InvoiceNotFoundError(
            "Invoice not found.",
            details={"stripeInvoiceId": invoice["id"], "matches": len(matches)},
        )

    # Keep payment_failed distinct, otherwise the invoice just reads "open"
    status = "payment_failed" if event is InvoiceStatusEvent.PAYMENT_FAILED else invoice.get("status")
    matches[0].reference.update({
        "stripeInvoiceStatus": status,
        "lastStripeEvent": event.value,
    })
    logger.info("✅ Invoice %s status set to %s (%s)", invoice["id"], status, event.value)
    return status
