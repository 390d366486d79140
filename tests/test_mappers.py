"""Tests for the product, price, tax rate, invoice and payment mirrors."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from stripe_sync.errors import CustomerNotFoundError, MultipleCustomersError
from stripe_sync.handlers.common import (
    dashboard_link,
    find_customer,
    object_id,
    prefix_metadata,
    split_role,
    to_timestamp,
)
from stripe_sync.handlers.invoice import insert_invoice_record
from stripe_sync.handlers.payment import insert_payment_record
from stripe_sync.handlers.price import build_price_data, insert_price_record
from stripe_sync.handlers.product import build_product_data, create_product_record, delete_product_or_price
from stripe_sync.handlers.tax_rate import insert_tax_rate_record

from .conftest import make_customer_doc


# =============================================================================
# Helper Tests
# =============================================================================


class TestHelpers:

    def test_prefix_metadata(self):
        assert prefix_metadata({"tier": "gold"}) == {"stripe_metadata_tier": "gold"}
        assert prefix_metadata(None) == {}

    def test_split_role(self):
        role, rest = split_role({"firebaseRole": "premium", "tier": "gold"})
        assert role == "premium"
        assert rest == {"tier": "gold"}

    def test_dashboard_link(self):
        assert dashboard_link("customers", "cus_1", False) == "https://dashboard.stripe.com/test/customers/cus_1"
        assert dashboard_link("customers", "cus_1", True) == "https://dashboard.stripe.com/customers/cus_1"

    def test_to_timestamp(self):
        assert to_timestamp(1700000000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert to_timestamp(None) is None

    def test_object_id(self):
        assert object_id("prod_1") == "prod_1"
        assert object_id({"id": "prod_1"}) == "prod_1"
        assert object_id(None) is None

    def test_find_customer(self, ctx, db):
        make_customer_doc(db, "alice", "cus_alice")
        assert find_customer(ctx, "cus_alice").id == "alice"

    def test_find_customer_missing(self, ctx):
        with pytest.raises(CustomerNotFoundError):
            find_customer(ctx, "cus_nobody")

    def test_find_customer_ambiguous(self, ctx, db):
        make_customer_doc(db, "alice", "cus_shared")
        make_customer_doc(db, "bob", "cus_shared")
        with pytest.raises(MultipleCustomersError):
            find_customer(ctx, "cus_shared")


# =============================================================================
# Product Tests
# =============================================================================


PRODUCT = {
    "id": "prod_basic",
    "object": "product",
    "active": True,
    "name": "Basic",
    "description": "Basic plan",
    "images": ["https://example.com/basic.png"],
    "metadata": {"firebaseRole": "basic", "tier": "1"},
    "tax_code": "txcd_10000000",
}


class TestProducts:

    def test_build_product_data(self):
        data = build_product_data(PRODUCT)

        assert data["role"] == "basic"
        assert data["name"] == "Basic"
        assert data["images"] == ["https://example.com/basic.png"]
        assert data["stripe_metadata_tier"] == "1"
        assert "stripe_metadata_firebaseRole" not in data
        assert data["metadata"] == {"firebaseRole": "basic", "tier": "1"}

    def test_product_without_role(self):
        data = build_product_data({"id": "prod_x", "active": False, "metadata": {}})
        assert data["role"] is None

    def test_create_product_merges(self, ctx, db):
        db.document("products/prod_basic").set({"custom": "kept"})

        create_product_record(ctx, PRODUCT)

        stored = db.data("products/prod_basic")
        assert stored["custom"] == "kept"
        assert stored["name"] == "Basic"

    def test_delete_product(self, ctx, db):
        create_product_record(ctx, PRODUCT)
        delete_product_or_price(ctx, {"id": "prod_basic", "object": "product"})
        assert db.data("products/prod_basic") is None

    def test_delete_price(self, ctx, db):
        db.document("products/prod_basic/prices/price_1").set({"active": True})
        delete_product_or_price(ctx, {"id": "price_1", "object": "price", "product": "prod_basic"})
        assert db.data("products/prod_basic/prices/price_1") is None


# =============================================================================
# Price Tests
# =============================================================================


PRICE = {
    "id": "price_monthly",
    "object": "price",
    "active": True,
    "billing_scheme": "per_unit",
    "currency": "usd",
    "nickname": "Monthly",
    "type": "recurring",
    "unit_amount": 1000,
    "recurring": {"interval": "month", "interval_count": 1, "trial_period_days": 14},
    "tax_behavior": "exclusive",
    "metadata": {"plan": "m"},
    "product": "prod_basic",
}


class TestPrices:

    def test_build_price_data(self):
        data = build_price_data(PRICE)

        assert data["description"] == "Monthly"
        assert data["interval"] == "month"
        assert data["interval_count"] == 1
        assert data["trial_period_days"] == 14
        assert data["unit_amount"] == 1000
        assert data["product"] == "prod_basic"
        assert data["stripe_metadata_plan"] == "m"

    def test_one_time_price(self):
        data = build_price_data({**PRICE, "type": "one_time", "recurring": None})
        assert data["interval"] is None
        assert data["trial_period_days"] is None

    def test_insert_price(self, ctx, db, stripe_mock):
        insert_price_record(ctx, PRICE)

        assert db.data("products/prod_basic/prices/price_monthly")["currency"] == "usd"
        stripe_mock.Price.retrieve.assert_not_called()

    def test_tiered_price_is_refetched(self, ctx, db, stripe_mock):
        tiers = [{"up_to": 10, "unit_amount": 500}, {"up_to": None, "unit_amount": 400}]
        stripe_mock.Price.retrieve.return_value = {**PRICE, "billing_scheme": "tiered", "tiers": tiers}

        insert_price_record(ctx, {**PRICE, "billing_scheme": "tiered"})

        stripe_mock.Price.retrieve.assert_called_once_with("price_monthly", expand=["tiers"])
        assert db.data("products/prod_basic/prices/price_monthly")["tiers"] == tiers


# =============================================================================
# Tax Rate Tests
# =============================================================================


class TestTaxRates:

    def test_insert_tax_rate(self, ctx, db):
        insert_tax_rate_record(ctx, {
            "id": "txr_1",
            "object": "tax_rate",
            "percentage": 19.0,
            "display_name": "VAT",
            "metadata": {"region": "eu"},
        })

        stored = db.data("products/tax_rates/tax_rates/txr_1")
        assert stored["percentage"] == 19.0
        assert stored["stripe_metadata_region"] == "eu"
        assert "metadata" not in stored


# =============================================================================
# Invoice and Payment Tests
# =============================================================================


INVOICE = {
    "id": "in_1",
    "object": "invoice",
    "customer": "cus_alice",
    "subscription": "sub_1",
    "payment_intent": "pi_1",
    "status": "paid",
    "lines": {"data": [{"price": {"id": "price_monthly", "product": "prod_basic"}}]},
}


class TestInvoices:

    def test_insert_invoice(self, ctx, db):
        make_customer_doc(db, "alice", "cus_alice")

        insert_invoice_record(ctx, INVOICE)

        assert db.data("customers/alice/subscriptions/sub_1/invoices/in_1")["status"] == "paid"
        payment = db.data("customers/alice/payments/pi_1")
        assert payment["prices"] == [db.document("products/prod_basic/prices/price_monthly")]

    def test_invoice_without_payment_intent_keys_on_invoice(self, ctx, db):
        make_customer_doc(db, "alice", "cus_alice")

        insert_invoice_record(ctx, {**INVOICE, "payment_intent": None})

        assert db.data("customers/alice/payments/in_1") is not None

    def test_invoice_without_subscription(self, ctx, db):
        make_customer_doc(db, "alice", "cus_alice")

        insert_invoice_record(ctx, {**INVOICE, "subscription": None})

        assert not any("/invoices/" in path for path in db.docs)
        assert db.data("customers/alice/payments/pi_1") is not None

    def test_invoice_for_unknown_customer(self, ctx):
        with pytest.raises(CustomerNotFoundError):
            insert_invoice_record(ctx, INVOICE)


class TestPayments:

    def test_insert_payment(self, ctx, db):
        make_customer_doc(db, "alice", "cus_alice")

        insert_payment_record(ctx, {"id": "pi_1", "customer": "cus_alice", "status": "succeeded", "amount": 500})

        assert db.data("customers/alice/payments/pi_1")["status"] == "succeeded"

    def test_payment_merges_with_invoice_prices(self, ctx, db):
        make_customer_doc(db, "alice", "cus_alice")
        insert_invoice_record(ctx, INVOICE)

        insert_payment_record(ctx, {"id": "pi_1", "customer": "cus_alice", "status": "succeeded"})

        stored = db.data("customers/alice/payments/pi_1")
        assert stored["status"] == "succeeded"
        assert len(stored["prices"]) == 1

    def test_payment_from_checkout_lists_line_items(self, ctx, db, stripe_mock):
        make_customer_doc(db, "alice", "cus_alice")
        stripe_mock.checkout.Session.list_line_items.return_value = {
            "data": [{"id": "li_1", "quantity": 2, "price": {"id": "price_once", "product": "prod_book"}}],
        }

        insert_payment_record(ctx, {"id": "pi_2", "customer": "cus_alice"}, {"id": "cs_1"})

        stripe_mock.checkout.Session.list_line_items.assert_called_once_with("cs_1")
        stored = db.data("customers/alice/payments/pi_2")
        assert stored["items"][0]["quantity"] == 2
        assert stored["prices"] == [db.document("products/prod_book/prices/price_once")]
