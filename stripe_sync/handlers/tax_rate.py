"""Tax rate mirror: ``products/tax_rates/tax_rates/{taxRateId}``."""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import SyncContext
from .common import prefix_metadata, to_plain

logger = logging.getLogger("stripe_sync.handlers.tax_rate")


def insert_tax_rate_record(ctx: SyncContext, tax_rate: Dict[str, Any]) -> None:
    data = to_plain(tax_rate)
    metadata = data.pop("metadata", None)
    data.update(prefix_metadata(metadata))
    (
        ctx.products()
        .document("tax_rates")
        .collection("tax_rates")
        .document(tax_rate["id"])
        .set(data, merge=True)
    )
    logger.info("✅ Firestore document [tax_rates/%s] created/updated", tax_rate["id"])
