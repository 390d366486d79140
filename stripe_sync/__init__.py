"""Stripe <-> Firestore billing sync service.

FastAPI-based backend that mirrors Stripe billing state into Firestore:
- Webhook intake (products, prices, tax rates, subscriptions, invoices, payments)
- Checkout and customer portal session creation
- Customer lifecycle (create on sign-up, clean up on delete)
- Invoice sending and status tracking
- A read client for the mirrored collections

Security: webhooks are verified with the Stripe signing secret, callables
require a Firebase ID token.
"""

__version__ = "1.0.0"
