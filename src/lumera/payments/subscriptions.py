"""Subscription status queries and explicit cancellation."""

import logging
from typing import Optional

import stripe

from lumera.db.models import SubscriptionStatus
from lumera.payments.errors import CheckoutError
from lumera.payments.store import SubscriptionStore

logger = logging.getLogger(__name__)


async def get_subscription_status(store: SubscriptionStore, user_id: str) -> Optional[dict]:
    """Current subscription snapshot for a user, or None if unknown."""
    record = await store.find_by_user_id(user_id)
    if record is None:
        return None

    status = record.status
    if status == SubscriptionStatus.NONE.value:
        status = "free"

    return {
        "userId": user_id,
        "status": status,
        "currentPeriodEnd": record.period_end.isoformat() if record.period_end else None,
        "isPremium": record.is_premium,
    }


async def cancel_subscription(store: SubscriptionStore, user_id: str) -> str:
    """Cancel a user's subscription with Stripe and mark it cancelled.

    The customer.subscription.deleted webhook that follows writes the same
    status again, which is a no-op.

    Returns:
        The cancelled Stripe subscription id

    Raises:
        CheckoutError: If the user has no subscription
        stripe.StripeError: On Stripe API errors
    """
    if not user_id:
        raise CheckoutError("userId required")

    record = await store.find_by_user_id(user_id)
    if record is None or not record.provider_subscription_id:
        raise CheckoutError("No active subscription")

    subscription_id = record.provider_subscription_id
    stripe.Subscription.cancel(subscription_id)

    await store.apply_status(SubscriptionStatus.CANCELLED.value, user_id=user_id)

    logger.info(f"Cancelled subscription {subscription_id} for user {user_id}")
    return subscription_id
