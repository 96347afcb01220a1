"""Reconciliation handlers, one per Stripe event kind.

Each handler takes the event's ``data.object`` and the subscription store.
Handlers must be safe to run more than once for the same event: Stripe
delivers at least once and in no particular order. A lookup that finds no
record is logged and treated as success so Stripe does not keep retrying
an event we can never apply.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import stripe

from lumera.db.models import SubscriptionStatus
from lumera.payments.events import to_plain
from lumera.payments.store import SubscriptionStore

logger = logging.getLogger(__name__)


def period_end_of(subscription: Any) -> Optional[datetime]:
    """Current period end of a Stripe subscription as an aware UTC datetime.

    Newer API versions moved ``current_period_end`` from the subscription
    onto its items; both shapes are accepted.
    """
    timestamp = subscription.get("current_period_end")
    if timestamp is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            timestamp = items[0].get("current_period_end")
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _checkout_user_id(session: Any) -> Optional[str]:
    metadata = session.get("metadata") or {}
    return metadata.get("user_id") or session.get("client_reference_id")


def _checkout_subscription(session: Any) -> Optional[Any]:
    """Fetch the subscription created by a checkout session.

    Uses the session's ``subscription`` reference when present, otherwise
    the most recent subscription of the session's customer.
    """
    subscription = session.get("subscription")
    if subscription:
        if isinstance(subscription, str):
            return to_plain(stripe.Subscription.retrieve(subscription))
        return subscription

    customer_id = session.get("customer")
    if not customer_id:
        return None

    listing = stripe.Subscription.list(customer=customer_id, limit=1)
    data = listing["data"]
    return to_plain(data[0]) if data else None


async def handle_checkout_completed(session: Any, store: SubscriptionStore) -> None:
    """Handle checkout.session.completed.

    Marks the user's subscription active and records the Stripe
    subscription and customer ids, then writes a payment ledger row.
    """
    session = to_plain(session)
    user_id = _checkout_user_id(session)
    if not user_id:
        logger.warning(
            f"checkout.session.completed {session.get('id')} has no user_id - skipping"
        )
        return

    customer_id = session.get("customer")
    subscription = _checkout_subscription(session)
    if subscription is None:
        logger.warning(
            f"checkout.session.completed {session.get('id')}: "
            f"no subscription found for customer {customer_id} - skipping"
        )
        return

    subscription_id = subscription["id"]
    period_end = period_end_of(subscription)

    changed = await store.apply_status(
        SubscriptionStatus.ACTIVE.value,
        user_id=user_id,
        period_end=period_end,
        customer_id=customer_id,
        new_subscription_id=subscription_id,
    )
    if changed:
        logger.info(
            f"User {user_id} activated: subscription={subscription_id}, "
            f"customer={customer_id}, period_end={period_end}"
        )
    else:
        logger.info(f"User {user_id} already active on {subscription_id} - no change")

    await _record_payment(store, session, user_id, subscription_id)


async def _record_payment(
    store: SubscriptionStore,
    session: Any,
    user_id: str,
    subscription_id: str,
) -> None:
    amount_total = session.get("amount_total")
    currency = session.get("currency")
    metadata = session.get("metadata") or {}

    try:
        await store.record_payment(
            user_id=user_id,
            session_id=session["id"],
            subscription_id=subscription_id,
            amount=Decimal(amount_total) / 100 if amount_total is not None else None,
            currency=currency.upper() if currency else None,
            region=metadata.get("region"),
        )
    except Exception as e:
        # Ledger is an audit trail only; the subscription is already updated
        logger.error(f"Failed to record payment for session {session.get('id')}: {e}")


async def handle_subscription_updated(subscription: Any, store: SubscriptionStore) -> None:
    """Handle customer.subscription.updated.

    Stores Stripe's status verbatim and refreshes the period end. Without
    revision tracking, the last delivered update wins.
    """
    subscription = to_plain(subscription)
    subscription_id = subscription["id"]
    status = subscription.get("status")
    if not status:
        logger.warning(f"subscription.updated {subscription_id} has no status - skipping")
        return

    record = await store.find_by_subscription_id(subscription_id)
    if record is None:
        logger.warning(
            f"subscription.updated: subscription {subscription_id} not in database"
        )
        return

    changed = await store.apply_status(
        status,
        subscription_id=subscription_id,
        period_end=period_end_of(subscription),
    )
    if changed:
        logger.info(
            f"User {record.user_id} subscription {subscription_id}: "
            f"{record.status} -> {status}"
        )


async def handle_subscription_deleted(subscription: Any, store: SubscriptionStore) -> None:
    """Handle customer.subscription.deleted."""
    subscription = to_plain(subscription)
    subscription_id = subscription["id"]

    record = await store.find_by_subscription_id(subscription_id)
    if record is None:
        logger.warning(
            f"subscription.deleted: subscription {subscription_id} not in database"
        )
        return

    await store.apply_status(
        SubscriptionStatus.CANCELLED.value,
        subscription_id=subscription_id,
    )
    logger.info(f"User {record.user_id} cancelled subscription {subscription_id}")


async def handle_invoice_payment_succeeded(invoice: Any, store: SubscriptionStore) -> None:
    invoice = to_plain(invoice)
    amount_paid = invoice.get("amount_paid") or 0
    currency = (invoice.get("currency") or "").upper()
    logger.info(
        f"Invoice {invoice.get('id')} paid: {Decimal(amount_paid) / 100:.2f} {currency} "
        f"(customer={invoice.get('customer')})"
    )


async def handle_invoice_payment_failed(invoice: Any, store: SubscriptionStore) -> None:
    invoice = to_plain(invoice)
    # Stripe follows up with customer.subscription.updated (past_due)
    logger.warning(
        f"Invoice {invoice.get('id')} payment failed "
        f"(customer={invoice.get('customer')}, attempt={invoice.get('attempt_count')})"
    )
