"""Collaborators shared by every handler.

Handlers never reach for module-level clients; they receive a
``SyncContext`` holding the Firestore client, the configured Stripe module,
the Firebase Auth module and the settings. Tests build one with doubles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .channel import EventChannel
from .config import Settings


@dataclass
class SyncContext:
    db: Any
    stripe: Any
    auth: Any
    settings: Settings
    events: Optional[EventChannel] = None

    # -------------------------------------------------------------------------
    # Collection shortcuts
    # -------------------------------------------------------------------------

    def customers(self):
        return self.db.collection(self.settings.customers_collection)

    def products(self):
        return self.db.collection(self.settings.products_collection)

    def invoices(self):
        return self.db.collection(self.settings.invoices_collection)

    def product_ref(self, product_id: str):
        return self.products().document(product_id)

    def price_ref(self, product_id: str, price_id: str):
        return self.product_ref(product_id).collection("prices").document(price_id)

    def config_collection(self):
        # Older installs kept configuration documents under the products collection
        return self.db.collection(
            self.settings.stripe_config_collection or self.settings.products_collection
        )
