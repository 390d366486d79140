"""Tests against the real Stripe SDK: signed payloads and SDK response objects."""

from __future__ import annotations

import json
import time
from dataclasses import replace
from unittest.mock import MagicMock

import pytest
import stripe

from stripe_sync.context import SyncContext
from stripe_sync.dispatcher import RECEIVED_BODY, InvoiceWebhookDispatcher, WebhookDispatcher
from stripe_sync.handlers.common import to_plain
from stripe_sync.handlers.portal import create_portal_link
from stripe_sync.handlers.subscription import manage_subscription_status_change

from .conftest import make_customer_doc, make_subscription


def stripe_event(event_type, obj, event_id="evt_1"):
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


def signed(event, secret="whsec_test"):
    """Payload bytes and a ``Stripe-Signature`` header valid for ``secret``."""
    payload = json.dumps(event)
    timestamp = int(time.time())
    signature = stripe.WebhookSignature._compute_signature(f"{timestamp}.{payload}", secret)
    return payload.encode(), f"t={timestamp},v1={signature}"


def construct(cls, values):
    return cls.construct_from(values, "sk_test_123")


@pytest.fixture
def real_stripe(monkeypatch):
    """The SDK module with its network calls replaced; everything else is real."""
    monkeypatch.setattr(stripe.Subscription, "retrieve", MagicMock(name="Subscription.retrieve"))
    monkeypatch.setattr(stripe.Customer, "modify", MagicMock(name="Customer.modify"))
    monkeypatch.setattr(stripe.billing_portal.Session, "create", MagicMock(name="portal.Session.create"))
    return stripe


@pytest.fixture
def sdk_ctx(db, auth_mock, settings, real_stripe):
    return SyncContext(db=db, stripe=real_stripe, auth=auth_mock, settings=settings)


@pytest.fixture
def sdk_client(sdk_ctx):
    from fastapi.testclient import TestClient

    from stripe_sync.dependencies import get_context
    from stripe_sync.main import app
    from stripe_sync.middleware.rate_limit import limiter

    limiter.reset()
    app.dependency_overrides[get_context] = lambda: sdk_ctx
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Signed Webhook Tests
# =============================================================================


class TestSignedWebhooks:

    def test_irrelevant_event_is_acknowledged(self, sdk_ctx, db):
        payload, signature = signed(stripe_event("customer.created", {"id": "cus_1", "object": "customer"}))

        result = WebhookDispatcher(sdk_ctx).dispatch(payload, signature)

        assert result.status_code == 200
        assert result.body == RECEIVED_BODY
        assert result.event_type == "customer.created"
        assert db.docs == {}

    def test_tampered_payload_is_rejected(self, sdk_ctx, db):
        payload, signature = signed(stripe_event("product.created", {"id": "prod_1", "object": "product"}))

        result = WebhookDispatcher(sdk_ctx).dispatch(payload.replace(b"prod_1", b"prod_2"), signature)

        assert result.status_code == 401
        assert db.docs == {}

    def test_subscription_update_grants_role(self, sdk_client, db, real_stripe, auth_mock):
        make_customer_doc(db, "alice", "cus_1")
        real_stripe.Subscription.retrieve.return_value = construct(
            stripe.Subscription, make_subscription("sub_1", customer="cus_1", role="gold"),
        )
        payload, signature = signed(stripe_event(
            "customer.subscription.updated",
            {"id": "sub_1", "object": "subscription", "customer": "cus_1"},
        ))

        response = sdk_client.post(
            "/api/webhooks/stripe", content=payload, headers={"stripe-signature": signature},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        stored = db.data("customers/alice/subscriptions/sub_1")
        assert stored["role"] == "gold"
        assert stored["status"] == "active"
        assert type(stored["items"][0]) is dict
        assert auth_mock.claims["alice"]["stripeRole"] == "gold"

    def test_product_event_is_stored_as_plain_data(self, sdk_ctx, db):
        payload, signature = signed(stripe_event("product.created", {
            "id": "prod_1", "object": "product", "active": True, "name": "Pro",
            "images": [], "metadata": {"firebaseRole": "gold", "tier": "top"},
        }))

        result = WebhookDispatcher(sdk_ctx).dispatch(payload, signature)

        assert result.handled
        stored = db.data("products/prod_1")
        assert stored["role"] == "gold"
        assert stored["stripe_metadata_tier"] == "top"
        assert type(stored["metadata"]) is dict


class TestInvoiceWebhookSecret:

    def test_own_secret_is_used(self, sdk_ctx):
        sdk_ctx.settings = replace(sdk_ctx.settings, invoices_webhook_secret="whsec_invoices")
        event = stripe_event("customer.created", {"id": "cus_1", "object": "customer"})

        own = InvoiceWebhookDispatcher(sdk_ctx).dispatch(*signed(event, "whsec_invoices"))
        shared = InvoiceWebhookDispatcher(sdk_ctx).dispatch(*signed(event, "whsec_test"))
        payments = WebhookDispatcher(sdk_ctx).dispatch(*signed(event, "whsec_invoices"))

        assert own.status_code == 200
        assert shared.status_code == 401
        assert payments.status_code == 401

    def test_falls_back_to_shared_secret(self, sdk_ctx):
        event = stripe_event("customer.created", {"id": "cus_1", "object": "customer"})

        result = InvoiceWebhookDispatcher(sdk_ctx).dispatch(*signed(event, "whsec_test"))

        assert result.status_code == 200


# =============================================================================
# SDK Response Tests
# =============================================================================


class TestSdkResponses:

    def test_to_plain_converts_nested_objects(self):
        subscription = construct(stripe.Subscription, make_subscription(role="gold"))

        plain = to_plain(subscription)

        assert type(plain) is dict
        product = plain["items"]["data"][0]["price"]["product"]
        assert type(product) is dict
        assert product["metadata"] == {"firebaseRole": "gold"}

    def test_reconcile_copies_billing_details(self, sdk_ctx, db, real_stripe, auth_mock):
        make_customer_doc(db, "alice", "cus_alice")
        real_stripe.Subscription.retrieve.return_value = construct(stripe.Subscription, make_subscription(
            role="gold",
            default_payment_method={
                "id": "pm_1",
                "object": "payment_method",
                "customer": "cus_alice",
                "billing_details": {"name": "Alice Example", "phone": None, "address": {"country": "DE"}},
            },
        ))

        data = manage_subscription_status_change(sdk_ctx, "sub_1", "cus_alice", create_action=True)

        assert data["role"] == "gold"
        assert auth_mock.claims["alice"]["stripeRole"] == "gold"
        real_stripe.Customer.modify.assert_called_once_with(
            "cus_alice", name="Alice Example", address={"country": "DE"},
        )

    def test_portal_session_is_plain(self, sdk_ctx, db, real_stripe):
        make_customer_doc(db, "alice", "cus_alice")
        real_stripe.billing_portal.Session.create.return_value = construct(stripe.billing_portal.Session, {
            "id": "bps_1", "object": "billing_portal.session", "url": "https://billing.stripe.com/p/1",
        })

        session = create_portal_link(sdk_ctx, "alice", "https://app.example.com")

        assert type(session) is dict
        assert session["url"] == "https://billing.stripe.com/p/1"
