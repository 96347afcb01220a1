"""Map application users to Stripe customers."""

import logging
from datetime import datetime, timezone
from typing import Optional

import stripe

from lumera.payments.store import SubscriptionStore

logger = logging.getLogger(__name__)


async def resolve_customer(
    store: SubscriptionStore,
    user_id: str,
    email: str,
    region: Optional[str] = None,
) -> str:
    """Return the user's Stripe customer id, creating the customer if needed.

    Two concurrent first checkouts for the same user can both reach Stripe
    before either stores its customer. The store keeps whichever
    customer id was written first and the other customer is deleted.

    Args:
        store: Subscription store
        user_id: Application user id
        email: Email to attach to a new customer
        region: Pricing region, kept in customer metadata

    Returns:
        Stripe customer id

    Raises:
        stripe.StripeError: On Stripe API errors
        StoreUnavailable: On database errors
    """
    record = await store.find_by_user_id(user_id)
    if record and record.provider_customer_id:
        logger.info(f"Existing customer {record.provider_customer_id} for user {user_id}")
        return record.provider_customer_id

    metadata = {
        "user_id": user_id,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    if region:
        metadata["region"] = region

    customer = stripe.Customer.create(
        email=email,
        metadata=metadata,
    )

    stored_id = await store.upsert_customer(user_id, customer.id)
    if stored_id != customer.id:
        logger.warning(
            f"User {user_id} already has customer {stored_id}; "
            f"discarding duplicate {customer.id}"
        )
        try:
            stripe.Customer.delete(customer.id)
        except stripe.StripeError as e:
            logger.error(f"Failed to delete duplicate customer {customer.id}: {e}")
        return stored_id

    logger.info(f"Created customer {customer.id} for user {user_id}")
    return customer.id
