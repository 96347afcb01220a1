"""Stripe webhook handling: verify, route, acknowledge."""

import logging
from typing import Optional

from aiohttp import web

from lumera.config.settings import get_config
from lumera.payments.errors import HandlerError, ReconciliationError, VerificationError
from lumera.payments.router import route_event
from lumera.payments.store import SubscriptionStore
from lumera.payments.verifier import verify_event

logger = logging.getLogger(__name__)


async def handle_webhook(
    payload: bytes,
    sig_header: Optional[str],
    store: SubscriptionStore,
    secret: Optional[str] = None,
) -> web.Response:
    """Handle and verify a Stripe webhook delivery.

    Verification failures short-circuit before any database access.

    Args:
        payload: Raw webhook payload bytes
        sig_header: Stripe-Signature header value
        store: Subscription store
        secret: Webhook signing secret; defaults to the configured one

    Returns:
        aiohttp.web.Response: 200 on success (including unhandled event
        types and unknown subscriptions), 400 on verification failure,
        500 when a handler fails so Stripe retries
    """
    if secret is None:
        secret = get_config().stripe_webhook_secret.get_secret_value()

    try:
        event = verify_event(payload, sig_header, secret)
    except VerificationError as e:
        logger.error(f"Webhook verification failed: {e}")
        return web.json_response({"error": f"Webhook Error: {e}"}, status=400)

    logger.info(f"Received webhook: {event.kind} ({event.id})")

    try:
        ack = await route_event(event, store)
    except ReconciliationError as e:
        logger.error(f"Data integrity fault processing {event.kind} ({event.id}): {e}")
        return web.json_response({"error": "Reconciliation error"}, status=500)
    except HandlerError as e:
        logger.exception(f"Error processing webhook {event.kind} ({event.id}): {e}")
        return web.json_response({"error": "Internal error"}, status=500)

    return web.json_response(ack.to_dict())
