"""Read access to the mirrored products, subscriptions and payments.

Server-side counterpart of the browser SDK: point lookups, filtered
queries and realtime listeners. Listeners deliver the full current result
first (even when empty) and then every change as it happens.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

from google.api_core import exceptions as gcp_exceptions

from .errors import StripePaymentsError
from .models import Payment, Price, Product, Subscription

logger = logging.getLogger("stripe_sync.client")

WhereClause = Tuple[str, str, Any]
Unsubscribe = Callable[[], None]

SUBSCRIPTION_STATES = (
    "active",
    "canceled",
    "incomplete",
    "incomplete_expired",
    "past_due",
    "trialing",
    "unpaid",
)

PAYMENT_STATES = (
    "canceled",
    "processing",
    "requires_action",
    "requires_capture",
    "requires_confirmation",
    "requires_payment_method",
    "succeeded",
)


@dataclass
class Change:
    type: str  # "added", "modified" or "removed"
    item: Any


@dataclass
class SnapshotUpdate:
    items: List[Any]
    changes: List[Change] = field(default_factory=list)
    size: int = 0
    empty: bool = True


def _check_non_empty(value: Optional[str], message: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise StripePaymentsError("invalid-argument", message)


def _states(status: Union[str, Sequence[str], None], allowed: Sequence[str]) -> List[str]:
    if status is None:
        return []
    states = [status] if isinstance(status, str) else list(status)
    for state in states:
        if state not in allowed:
            raise StripePaymentsError("invalid-argument", f"Unknown status: {state}")
    return states


class StripePayments:
    """Reads the collections kept in sync by the webhook handlers."""

    def __init__(self, db, products_collection: str = "products", customers_collection: str = "customers"):
        _check_non_empty(products_collection, "productsCollection must be a non-empty string.")
        _check_non_empty(customers_collection, "customersCollection must be a non-empty string.")
        self.db = db
        self.products_collection = products_collection
        self.customers_collection = customers_collection

    # -------------------------------------------------------------------------
    # Firestore access
    # -------------------------------------------------------------------------

    def _query(self, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except StripePaymentsError:
            raise
        except gcp_exceptions.PermissionDenied as exc:
            raise StripePaymentsError("permission-denied", "Permission denied while querying Firestore", exc)
        except gcp_exceptions.Unauthenticated as exc:
            raise StripePaymentsError("unauthenticated", "Unauthenticated while querying Firestore", exc)
        except gcp_exceptions.DeadlineExceeded as exc:
            raise StripePaymentsError("deadline-exceeded", "Firestore query timed out", exc)
        except Exception as exc:
            raise StripePaymentsError("internal", "Unexpected error while querying Firestore", exc)

    def _customer(self, uid: str):
        _check_non_empty(uid, "uid must be a non-empty string.")
        return self.db.collection(self.customers_collection).document(uid)

    # -------------------------------------------------------------------------
    # Products and prices
    # -------------------------------------------------------------------------

    def get_product(self, product_id: str, include_prices: bool = False) -> Product:
        _check_non_empty(product_id, "productId must be a non-empty string.")
        ref = self.db.collection(self.products_collection).document(product_id)
        snap = self._query(ref.get)
        if not snap.exists:
            raise StripePaymentsError("not-found", f"No product found with the ID: {product_id}")
        product = Product.from_snapshot(snap)
        if include_prices:
            product.prices = self._list_prices(ref)
        return product

    def get_products(
        self,
        active_only: bool = False,
        where: Optional[Iterable[WhereClause]] = None,
        limit: Optional[int] = None,
        include_prices: bool = False,
    ) -> List[Product]:
        query = self.db.collection(self.products_collection)
        if active_only:
            query = query.where("active", "==", True)
        for field_path, op, value in where or []:
            query = query.where(field_path, op, value)
        if limit is not None:
            if limit <= 0:
                raise StripePaymentsError("invalid-argument", "limit must be a positive integer.")
            query = query.limit(limit)

        products = []
        for snap in self._query(query.get):
            # The tax_rates document shares the products collection
            if snap.id == "tax_rates":
                continue
            product = Product.from_snapshot(snap)
            if include_prices:
                product.prices = self._list_prices(snap.reference)
            products.append(product)
        return products

    def _list_prices(self, product_ref) -> List[Price]:
        return [Price.from_snapshot(snap) for snap in self._query(product_ref.collection("prices").get)]

    def get_price(self, product_id: str, price_id: str) -> Price:
        _check_non_empty(product_id, "productId must be a non-empty string.")
        _check_non_empty(price_id, "priceId must be a non-empty string.")
        ref = (
            self.db.collection(self.products_collection)
            .document(product_id)
            .collection("prices")
            .document(price_id)
        )
        snap = self._query(ref.get)
        if not snap.exists:
            raise StripePaymentsError(
                "not-found", f"No price found with the ID: {price_id} for product: {product_id}"
            )
        return Price.from_snapshot(snap)

    def get_prices(self, product_id: str) -> List[Price]:
        _check_non_empty(product_id, "productId must be a non-empty string.")
        ref = self.db.collection(self.products_collection).document(product_id)
        if not self._query(ref.get).exists:
            raise StripePaymentsError("not-found", f"No product found with the ID: {product_id}")
        return self._list_prices(ref)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def get_current_user_subscription(self, uid: str, subscription_id: str) -> Subscription:
        _check_non_empty(subscription_id, "subscriptionId must be a non-empty string.")
        snap = self._query(self._customer(uid).collection("subscriptions").document(subscription_id).get)
        if not snap.exists:
            raise StripePaymentsError(
                "not-found", f"No subscription found with the ID: {subscription_id} for user: {uid}"
            )
        return Subscription.from_snapshot(snap)

    def _subscriptions_query(self, uid: str, status):
        query = self._customer(uid).collection("subscriptions")
        states = _states(status, SUBSCRIPTION_STATES)
        if states:
            query = query.where("status", "in", states)
        return query

    def get_current_user_subscriptions(self, uid: str, status: Union[str, Sequence[str], None] = None) -> List[Subscription]:
        query = self._subscriptions_query(uid, status)
        return [Subscription.from_snapshot(snap) for snap in self._query(query.get)]

    def on_current_user_subscription_update(
        self,
        uid: str,
        on_update: Callable[[SnapshotUpdate], None],
        on_error: Optional[Callable[[StripePaymentsError], None]] = None,
    ) -> Unsubscribe:
        query = self._customer(uid).collection("subscriptions")
        return self._listen(query, Subscription.from_snapshot, on_update, on_error)

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def get_current_user_payment(self, uid: str, payment_id: str) -> Payment:
        _check_non_empty(payment_id, "paymentId must be a non-empty string.")
        snap = self._query(self._customer(uid).collection("payments").document(payment_id).get)
        if not snap.exists:
            raise StripePaymentsError("not-found", f"No payment found with the ID: {payment_id} for user: {uid}")
        return Payment.from_snapshot(snap)

    def get_current_user_payments(self, uid: str, status: Union[str, Sequence[str], None] = None) -> List[Payment]:
        query = self._customer(uid).collection("payments")
        states = _states(status, PAYMENT_STATES)
        if states:
            query = query.where("status", "in", states)
        return [Payment.from_snapshot(snap) for snap in self._query(query.get)]

    def on_current_user_payment_update(
        self,
        uid: str,
        on_update: Callable[[SnapshotUpdate], None],
        on_error: Optional[Callable[[StripePaymentsError], None]] = None,
    ) -> Unsubscribe:
        query = self._customer(uid).collection("payments")
        return self._listen(query, Payment.from_snapshot, on_update, on_error)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def _listen(self, query, convert, on_update, on_error) -> Unsubscribe:
        def on_snapshot(docs, changes, read_time):
            try:
                items = [convert(doc) for doc in docs]
                update = SnapshotUpdate(
                    items=items,
                    changes=[Change(change.type.name.lower(), convert(change.document)) for change in changes],
                    size=len(items),
                    empty=not items,
                )
            except Exception as exc:
                logger.exception("Failed to convert snapshot")
                if on_error is not None:
                    on_error(StripePaymentsError("internal", "Unexpected error while processing snapshot", exc))
                return
            on_update(update)

        watch = self._query(lambda: query.on_snapshot(on_snapshot))
        return watch.unsubscribe
