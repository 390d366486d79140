"""Shared fixtures: an in-memory Firestore, a mocked Stripe SDK and a test client."""

from __future__ import annotations

import itertools
import os
import tempfile
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import AlreadyExists, FailedPrecondition, NotFound

# Keep security logs out of the source tree
os.environ.setdefault("SECURITY_LOG_DIR", tempfile.mkdtemp(prefix="stripe-sync-logs-"))

from stripe_sync.config import Settings  # noqa: E402
from stripe_sync.context import SyncContext  # noqa: E402


# =============================================================================
# In-memory Firestore
# =============================================================================

def _copy(value):
    if isinstance(value, dict):
        return {key: _copy(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_copy(item) for item in value]
    return value


def _merge(target, update):
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = _copy(value)


class FakeSnapshot:
    def __init__(self, reference, data, update_time=None):
        self.reference = reference
        self.id = reference.id
        self._data = data
        self.exists = data is not None
        self.update_time = update_time

    def to_dict(self):
        return _copy(self._data) if self._data is not None else None

    def get(self, field):
        return (self._data or {}).get(field)


class FakeWriteOption:
    def __init__(self, last_update_time):
        self.last_update_time = last_update_time


class FakeQuery:
    def __init__(self, db, matcher, filters=(), limit=None):
        self.db = db
        self.matcher = matcher
        self.filters = tuple(filters)
        self._limit = limit

    def where(self, field, op, value):
        return FakeQuery(self.db, self.matcher, self.filters + ((field, op, value),), self._limit)

    def limit(self, count):
        return FakeQuery(self.db, self.matcher, self.filters, count)

    def _matches(self, data):
        for field, op, value in self.filters:
            actual = data.get(field)
            if op == "==" and actual != value:
                return False
            if op == "in" and actual not in value:
                return False
            if op == "array_contains" and value not in (actual or []):
                return False
        return True

    def get(self):
        snaps = []
        for path in sorted(self.db.docs):
            if not self.matcher(path):
                continue
            data = self.db.docs[path]
            if self._matches(data):
                snaps.append(self.db.document(path).get())
        if self._limit is not None:
            snaps = snaps[: self._limit]
        return snaps

    def stream(self):
        return iter(self.get())

    def on_snapshot(self, callback):
        watch = MagicMock(name="watch")
        watch.callback = callback
        watch.query = self
        self.db.watches.append(watch)
        return watch


class FakeCollectionRef(FakeQuery):
    def __init__(self, db, path):
        self.path = path
        self.id = path.rsplit("/", 1)[-1]
        super().__init__(db, lambda doc_path: doc_path.rsplit("/", 1)[0] == path)

    @property
    def parent(self):
        if "/" not in self.path:
            return None
        return self.db.document(self.path.rsplit("/", 1)[0])

    def document(self, doc_id=None):
        if doc_id is None:
            doc_id = f"auto{next(self.db.ids)}"
        return self.db.document(f"{self.path}/{doc_id}")

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return None, ref


class FakeDocumentRef:
    def __init__(self, db, path):
        self.db = db
        self.path = path
        self.id = path.rsplit("/", 1)[-1]

    def __eq__(self, other):
        return isinstance(other, FakeDocumentRef) and other.path == self.path

    def __hash__(self):
        return hash(self.path)

    def __repr__(self):
        return f"FakeDocumentRef({self.path!r})"

    @property
    def parent(self):
        return self.db.collection(self.path.rsplit("/", 1)[0])

    def collection(self, name):
        return self.db.collection(f"{self.path}/{name}")

    def get(self):
        return FakeSnapshot(self, self.db.docs.get(self.path), self.db.update_times.get(self.path))

    def _touch(self):
        self.db.update_times[self.path] = self.db.next_time()

    def set(self, data, merge=False):
        if merge and self.path in self.db.docs:
            _merge(self.db.docs[self.path], data)
        else:
            self.db.docs[self.path] = _copy(data)
        self._touch()

    def create(self, data):
        if self.path in self.db.docs:
            raise AlreadyExists(f"Document already exists: {self.path}")
        self.set(data)

    def update(self, data, option=None):
        if self.path not in self.db.docs:
            raise NotFound(f"No document to update: {self.path}")
        if option is not None and option.last_update_time != self.db.update_times.get(self.path):
            raise FailedPrecondition(f"Document changed since it was read: {self.path}")
        self.db.docs[self.path].update(_copy(data))
        self._touch()

    def delete(self):
        self.db.docs.pop(self.path, None)
        self.db.update_times.pop(self.path, None)


class FakeFirestore:
    """Just enough of ``google.cloud.firestore.Client`` for the handlers."""

    def __init__(self):
        self.docs = {}
        self.update_times = {}
        self.watches = []
        self.ids = itertools.count(1)
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def next_time(self):
        self._clock += timedelta(microseconds=1)
        return self._clock

    def collection(self, path):
        return FakeCollectionRef(self, path)

    def document(self, path):
        return FakeDocumentRef(self, path)

    def collection_group(self, name):
        return FakeQuery(self, lambda doc_path: doc_path.rsplit("/", 2)[-2] == name)

    def write_option(self, last_update_time=None):
        return FakeWriteOption(last_update_time)

    # Test helpers

    def data(self, path):
        return _copy(self.docs.get(path))


def change(kind, snapshot):
    """A watch change as delivered to ``on_snapshot`` callbacks."""
    return SimpleNamespace(type=SimpleNamespace(name=kind), document=snapshot)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def settings():
    return Settings(
        stripe_api_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        auth_events_secret="auth-secret",
        auto_delete_users=True,
    )


@pytest.fixture
def stripe_mock():
    return MagicMock(name="stripe")


@pytest.fixture
def auth_mock():
    """Firebase Auth double that remembers custom claims per uid."""
    auth = MagicMock(name="auth")
    auth.claims = {}
    auth.get_user.side_effect = lambda uid: SimpleNamespace(
        uid=uid,
        email=f"{uid}@example.com",
        phone_number=None,
        custom_claims=dict(auth.claims.get(uid) or {}),
    )
    auth.set_custom_user_claims.side_effect = lambda uid, claims: auth.claims.__setitem__(uid, dict(claims))
    return auth


@pytest.fixture
def ctx(db, stripe_mock, auth_mock, settings):
    return SyncContext(db=db, stripe=stripe_mock, auth=auth_mock, settings=settings)


@pytest.fixture
def client(ctx):
    from fastapi.testclient import TestClient

    from stripe_sync.dependencies import get_context
    from stripe_sync.main import app
    from stripe_sync.middleware.rate_limit import limiter

    limiter.reset()
    app.dependency_overrides[get_context] = lambda: ctx
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Stripe object builders
# =============================================================================

def make_customer_doc(db, uid, stripe_id):
    db.document(f"customers/{uid}").set({"email": f"{uid}@example.com", "stripeId": stripe_id})


def make_subscription(
    sub_id="sub_1",
    customer="cus_alice",
    status="active",
    role="premium",
    items=None,
    **extra,
):
    if items is None:
        items = [make_item("si_1", "price_basic", "prod_basic", role=role, created=1700000000)]
    subscription = {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "livemode": False,
        "metadata": {},
        "cancel_at_period_end": False,
        "cancel_at": None,
        "canceled_at": None,
        "ended_at": None,
        "created": 1700000000,
        "current_period_start": 1700000000,
        "current_period_end": 1702592000,
        "trial_start": None,
        "trial_end": None,
        "default_payment_method": None,
        "items": {"object": "list", "data": items},
    }
    subscription.update(extra)
    return subscription


def make_item(item_id, price_id, product_id, role=None, created=None, quantity=1):
    metadata = {"firebaseRole": role} if role else {}
    item = {
        "id": item_id,
        "quantity": quantity,
        "price": {
            "id": price_id,
            "product": {"id": product_id, "metadata": metadata},
        },
    }
    if created is not None:
        item["created"] = created
    return item
