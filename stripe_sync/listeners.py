#!/usr/bin/env python3
"""Firestore document triggers.

Watches the collections clients write to and reacts to new or removed
documents:
- customers/{uid}/checkout_sessions/{id} (added)  -> create checkout session
- customers/{uid} (removed)                       -> delete Stripe customer
- invoices/{id} (added)                            -> create and send invoice

A listener replays every existing document as ADDED when it starts, so
documents that already carry a result are skipped.

Usage:
    python -m stripe_sync.listeners --serviceAccount /path/to/sa.json
"""

from __future__ import annotations

import argparse
import logging
import time
from typing import Any, Callable, List, Optional, Set

import firebase_admin
from firebase_admin import credentials

from .context import SyncContext
from .dependencies import build_context
from .handlers import checkout_session, invoices
from .handlers.customer import on_customer_data_deleted

logger = logging.getLogger("stripe_sync.listeners")

CHECKOUT_SESSIONS_COLLECTION = "checkout_sessions"


class TriggerListenerManager:
    """Owns the Firestore watchers that stand in for document triggers."""

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx
        self.watchers: List = []
        # Paths whose handler is running; a replay mid-handler sees no result yet
        self.in_flight: Set[str] = set()

    def _watch(self, query, change_type: str, handler: Callable[[Any], bool], label: str) -> None:
        """Run ``handler`` for every ``change_type`` change on ``query``.

        A failing document is logged and does not stop the watcher.
        """

        def on_snapshot(docs, changes, read_time):
            for change in changes:
                if change.type.name != change_type:
                    continue
                try:
                    handler(change.document)
                except Exception:
                    logger.exception("%s trigger failed for %s", label, change.document.reference.path)

        self.watchers.append(query.on_snapshot(on_snapshot))
        logger.info("[Listener] %s (%s)", label, change_type.lower())

    def _run_once(self, snapshot, is_processed: Callable[[dict], bool], action: Callable) -> bool:
        """Run ``action`` unless the document has a result or is already in flight."""
        path = snapshot.reference.path
        if path in self.in_flight or is_processed(snapshot.to_dict() or {}):
            return False
        self.in_flight.add(path)
        try:
            action(self.ctx, snapshot)
        finally:
            self.in_flight.discard(path)
        return True

    # -------------------------------------------------------------------------
    # Checkout sessions
    # -------------------------------------------------------------------------

    def handle_checkout_session_added(self, snapshot) -> bool:
        customer_ref = snapshot.reference.parent.parent
        if customer_ref is None or customer_ref.parent.id != self.ctx.settings.customers_collection:
            return False
        return self._run_once(snapshot, checkout_session.is_processed, checkout_session.create_checkout_session)

    def start_checkout_sessions_listener(self) -> None:
        self._watch(
            self.ctx.db.collection_group(CHECKOUT_SESSIONS_COLLECTION),
            "ADDED",
            self.handle_checkout_session_added,
            CHECKOUT_SESSIONS_COLLECTION,
        )

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    def handle_customer_removed(self, snapshot) -> bool:
        return on_customer_data_deleted(self.ctx, snapshot.id, snapshot.to_dict() or {})

    def start_customers_listener(self) -> None:
        self._watch(
            self.ctx.customers(),
            "REMOVED",
            self.handle_customer_removed,
            self.ctx.settings.customers_collection,
        )

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def handle_invoice_added(self, snapshot) -> bool:
        return self._run_once(snapshot, invoices.is_processed, invoices.send_invoice)

    def start_invoices_listener(self) -> None:
        self._watch(
            self.ctx.invoices(),
            "ADDED",
            self.handle_invoice_added,
            self.ctx.settings.invoices_collection,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_all(self, checkout: bool = True, customers: bool = True, send_invoices: bool = True) -> None:
        if checkout:
            self.start_checkout_sessions_listener()
        if customers and self.ctx.settings.auto_delete_users:
            self.start_customers_listener()
        if send_invoices:
            self.start_invoices_listener()

    def stop_all(self) -> None:
        """Stop all watchers."""
        for watcher in self.watchers:
            try:
                watcher.unsubscribe()
            except Exception:
                logger.warning("Failed to unsubscribe watcher", exc_info=True)
        self.watchers.clear()
        logger.info("All listeners stopped")


# =============================================================================
# Main Entry Point
# =============================================================================

def main(sa_path: Optional[str] = None, skip_invoices: bool = False) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
    )
    if sa_path:
        firebase_admin.initialize_app(credentials.Certificate(sa_path))

    ctx = build_context()
    manager = TriggerListenerManager(ctx)

    try:
        manager.start_all(send_invoices=not skip_invoices)
        logger.info("Listening for document changes... (Ctrl+C to stop)")
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        logger.info("Shutdown requested...")
    finally:
        manager.stop_all()

    return 0


def cli(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Firestore triggers for checkout sessions, customer deletion and invoices",
    )
    parser.add_argument('--serviceAccount', default=None, help='Path to Firebase service account JSON')
    parser.add_argument('--skipInvoices', action='store_true', help='Do not watch the invoices collection')

    args = parser.parse_args(argv)
    return main(args.serviceAccount, skip_invoices=args.skipInvoices)


if __name__ == "__main__":
    raise SystemExit(cli())
