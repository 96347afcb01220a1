"""Stripe subscription checkout and webhook reconciliation.

Verifies Stripe webhooks, routes them by event kind, and keeps one
subscription record per user in PostgreSQL in sync with Stripe.
"""

from lumera.payments.checkout import create_checkout_session
from lumera.payments.customers import resolve_customer
from lumera.payments.router import route_event
from lumera.payments.store import SubscriptionStore
from lumera.payments.verifier import verify_event
from lumera.payments.webhooks import handle_webhook

__all__ = [
    "SubscriptionStore",
    "create_checkout_session",
    "handle_webhook",
    "resolve_customer",
    "route_event",
    "verify_event",
]
