"""Handlers that mirror Stripe objects into Firestore."""

from .checkout_session import create_checkout_session, handle_checkout_session_event
from .customer import (
    create_customer_record,
    delete_stripe_customer,
    on_customer_data_deleted,
    on_user_created,
    on_user_deleted,
)
from .invoice import insert_invoice_record
from .invoices import send_invoice, update_invoice_status
from .payment import insert_payment_record
from .portal import create_portal_link
from .price import insert_price_record
from .product import create_product_record, delete_product_or_price
from .subscription import SubscriptionReconciler, manage_subscription_status_change
from .tax_rate import insert_tax_rate_record

__all__ = [
    'create_checkout_session',
    'handle_checkout_session_event',
    'create_customer_record',
    'delete_stripe_customer',
    'on_customer_data_deleted',
    'on_user_created',
    'on_user_deleted',
    'insert_invoice_record',
    'send_invoice',
    'update_invoice_status',
    'insert_payment_record',
    'create_portal_link',
    'insert_price_record',
    'create_product_record',
    'delete_product_or_price',
    'SubscriptionReconciler',
    'manage_subscription_status_change',
    'insert_tax_rate_record',
]
