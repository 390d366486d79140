"""Read client for the mirrored billing data."""

from .errors import StripePaymentsError
from .models import Payment, Price, Product, Subscription
from .payments import Change, SnapshotUpdate, StripePayments

__all__ = [
    'StripePayments',
    'StripePaymentsError',
    'SnapshotUpdate',
    'Change',
    'Product',
    'Price',
    'Subscription',
    'Payment',
]
