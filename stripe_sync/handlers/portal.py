"""Customer portal links."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..context import SyncContext
from ..errors import CallableError
from .common import to_plain
from .customer import create_customer_record

logger = logging.getLogger("stripe_sync.handlers.portal")


def create_portal_link(
    ctx: SyncContext,
    uid: Optional[str],
    return_url: Optional[str],
    locale: str = "auto",
    configuration: Optional[str] = None,
    flow_data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Create a billing portal session for ``uid`` and return it.

    Raises:
        CallableError("unauthenticated") without a caller
        CallableError("internal") wrapping any Stripe or Firestore failure
    """
    if not uid:
        raise CallableError("The function must be called while authenticated!", code="unauthenticated")

    try:
        snap = ctx.customers().document(uid).get()
        record = (snap.to_dict() or {}) if snap.exists else {}
        if not record.get("stripeId"):
            user = ctx.auth.get_user(uid)
            record = create_customer_record(ctx, uid, email=user.email, phone=user.phone_number)

        params: Dict[str, Any] = {
            "customer": record["stripeId"],
            "return_url": return_url,
            "locale": locale or "auto",
        }
        if configuration:
            params["configuration"] = configuration
        if flow_data:
            params["flow_data"] = flow_data

        session = to_plain(ctx.stripe.billing_portal.Session.create(**params))
        logger.info("✅ Created billing portal link for user [%s]", uid)
        return session
    except Exception as exc:
        logger.exception("Billing portal link creation failed for user [%s]", uid)
        raise CallableError(str(exc), code="internal") from exc
