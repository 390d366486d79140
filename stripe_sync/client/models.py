"""Read-only views of the mirrored documents.

Timestamps are returned as aware datetimes; document references become
plain ``{"product": ..., "price": ...}`` id pairs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def _ref_id(ref: Any) -> Optional[str]:
    if ref is None:
        return None
    return getattr(ref, "id", ref)


def _price_ids(ref: Any) -> Dict[str, Optional[str]]:
    """``products/{product}/prices/{price}`` -> ``{"product": ..., "price": ...}``."""
    product_ref = ref.parent.parent
    return {"product": product_ref.id if product_ref is not None else None, "price": ref.id}


def _uid(snapshot) -> Optional[str]:
    customer_ref = snapshot.reference.parent.parent
    return customer_ref.id if customer_ref is not None else None


@dataclass
class Price:
    id: str
    product: str
    active: bool
    currency: Optional[str]
    unit_amount: Optional[int]
    description: Optional[str]
    type: Optional[str]
    interval: Optional[str]
    interval_count: Optional[int]
    trial_period_days: Optional[int]
    metadata: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_snapshot(cls, snapshot) -> "Price":
        data = snapshot.to_dict() or {}
        return cls(
            id=snapshot.id,
            product=snapshot.reference.parent.parent.id,
            active=bool(data.get("active")),
            currency=data.get("currency"),
            unit_amount=data.get("unit_amount"),
            description=data.get("description"),
            type=data.get("type"),
            interval=data.get("interval"),
            interval_count=data.get("interval_count"),
            trial_period_days=data.get("trial_period_days"),
            metadata=data.get("metadata") or {},
            raw=data,
        )


@dataclass
class Product:
    id: str
    active: bool
    name: Optional[str]
    description: Optional[str]
    role: Optional[str]
    images: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    tax_code: Optional[str] = None
    prices: List[Price] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_snapshot(cls, snapshot) -> "Product":
        data = snapshot.to_dict() or {}
        return cls(
            id=snapshot.id,
            active=bool(data.get("active")),
            name=data.get("name"),
            description=data.get("description"),
            role=data.get("role"),
            images=list(data.get("images") or []),
            metadata=data.get("metadata") or {},
            tax_code=data.get("tax_code"),
            raw=data,
        )


@dataclass
class Subscription:
    id: str
    uid: Optional[str]
    status: str
    role: Optional[str]
    product: Optional[str]
    price: Optional[str]
    prices: List[Dict[str, Optional[str]]]
    quantity: Optional[int]
    metadata: Dict[str, Any]
    stripe_link: Optional[str]
    cancel_at_period_end: bool
    created: Optional[datetime]
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    ended_at: Optional[datetime] = None
    cancel_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, snapshot) -> "Subscription":
        data = snapshot.to_dict() or {}
        return cls(
            id=snapshot.id,
            uid=_uid(snapshot),
            status=data.get("status"),
            role=data.get("role"),
            product=_ref_id(data.get("product")),
            price=_ref_id(data.get("price")),
            prices=[_price_ids(ref) for ref in data.get("prices") or []],
            quantity=data.get("quantity"),
            metadata=data.get("metadata") or {},
            stripe_link=data.get("stripeLink"),
            cancel_at_period_end=bool(data.get("cancel_at_period_end")),
            created=data.get("created"),
            current_period_start=data.get("current_period_start"),
            current_period_end=data.get("current_period_end"),
            ended_at=data.get("ended_at"),
            cancel_at=data.get("cancel_at"),
            canceled_at=data.get("canceled_at"),
            trial_start=data.get("trial_start"),
            trial_end=data.get("trial_end"),
        )


@dataclass
class Payment:
    id: str
    uid: Optional[str]
    amount: Optional[int]
    amount_received: Optional[int]
    currency: Optional[str]
    status: Optional[str]
    customer: Optional[str]
    description: Optional[str]
    invoice: Optional[str]
    created: Optional[int]
    metadata: Dict[str, Any] = field(default_factory=dict)
    payment_method_types: List[str] = field(default_factory=list)
    prices: List[Dict[str, Optional[str]]] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot) -> "Payment":
        data = snapshot.to_dict() or {}
        return cls(
            id=snapshot.id,
            uid=_uid(snapshot),
            amount=data.get("amount"),
            amount_received=data.get("amount_received"),
            currency=data.get("currency"),
            status=data.get("status"),
            customer=data.get("customer"),
            description=data.get("description"),
            invoice=data.get("invoice"),
            created=data.get("created"),
            metadata=data.get("metadata") or {},
            payment_method_types=list(data.get("payment_method_types") or []),
            prices=[_price_ids(ref) for ref in data.get("prices") or []],
        )
