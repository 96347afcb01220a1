"""Stripe Checkout session creation for subscription signup."""

import logging
from dataclasses import dataclass
from typing import Optional

import stripe

from lumera.config.settings import get_config
from lumera.payments.customers import resolve_customer
from lumera.payments.errors import CheckoutError
from lumera.payments.store import SubscriptionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


async def create_checkout_session(
    store: SubscriptionStore,
    user_id: str,
    price_id: str,
    email: str,
    region: Optional[str] = None,
    apply_coupon: bool = False,
) -> CheckoutSession:
    """Create a Stripe Checkout Session for subscription signup.

    The user id goes into session metadata so the checkout.session.completed
    webhook can find the user again.

    Args:
        store: Subscription store (for the customer mapping)
        user_id: Application user id
        price_id: Stripe price id of the plan
        email: User email, used when a customer has to be created
        region: Optional pricing region, kept in metadata
        apply_coupon: Apply the configured launch coupon

    Returns:
        CheckoutSession with the session id and hosted checkout URL

    Raises:
        CheckoutError: If required input or config is missing
        stripe.StripeError: On Stripe API errors
    """
    if not user_id or not price_id or not email:
        raise CheckoutError("Missing required fields: userId, priceId, email")

    config = get_config()
    if not config.stripe_secret.get_secret_value():
        raise CheckoutError("stripe_secret not configured")

    stripe.api_key = config.stripe_secret.get_secret_value()

    customer_id = await resolve_customer(store, user_id, email, region=region)

    metadata = {"user_id": user_id}
    if region:
        metadata["region"] = region

    params = {
        "customer": customer_id,
        "mode": "subscription",
        "client_reference_id": user_id,
        "line_items": [
            {
                "price": price_id,
                "quantity": 1,
            }
        ],
        "success_url": config.checkout_success_url,
        "cancel_url": config.checkout_cancel_url,
        "metadata": metadata,
        "billing_address_collection": "auto",
        "locale": config.checkout_locale,
    }
    if apply_coupon:
        params["discounts"] = [{"coupon": config.stripe_coupon_launch}]
        logger.info(f"Applying coupon {config.stripe_coupon_launch} for user {user_id}")

    session = stripe.checkout.Session.create(**params)

    logger.info(f"Created checkout session {session.id} for user {user_id}")

    return CheckoutSession(session_id=session.id, url=session.url)
