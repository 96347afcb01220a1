"""Dispatch verified webhook events to reconciliation handlers."""

import logging
from typing import Any, Awaitable, Callable

from lumera.payments import handlers
from lumera.payments.errors import HandlerError
from lumera.payments.events import Acknowledgement, EventKind, VerifiedEvent
from lumera.payments.store import SubscriptionStore

logger = logging.getLogger(__name__)

Handler = Callable[[Any, SubscriptionStore], Awaitable[None]]

HANDLERS: dict[EventKind, Handler] = {
    EventKind.CHECKOUT_COMPLETED: handlers.handle_checkout_completed,
    EventKind.SUBSCRIPTION_UPDATED: handlers.handle_subscription_updated,
    EventKind.SUBSCRIPTION_DELETED: handlers.handle_subscription_deleted,
    EventKind.INVOICE_PAYMENT_SUCCEEDED: handlers.handle_invoice_payment_succeeded,
    EventKind.INVOICE_PAYMENT_FAILED: handlers.handle_invoice_payment_failed,
}


async def route_event(event: VerifiedEvent, store: SubscriptionStore) -> Acknowledgement:
    """Run the handler registered for an event's kind.

    Kinds without a handler are acknowledged untouched; Stripe adds new
    event types over time and rejecting them would only cause retries.

    Args:
        event: Verified webhook event
        store: Subscription store the handler writes to

    Returns:
        Acknowledgement for the event

    Raises:
        HandlerError: If the handler fails. Writes the handler already made
            are kept; redelivery re-applies them idempotently.
    """
    kind = EventKind.parse(event.kind)
    handler = HANDLERS.get(kind) if kind is not None else None

    if handler is None:
        logger.info(f"Unhandled event type: {event.kind}")
        return Acknowledgement(event_id=event.id, kind=event.kind, handled=False)

    try:
        await handler(event.data, store)
    except HandlerError:
        raise
    except Exception as e:
        raise HandlerError(f"{event.kind} handler failed: {e}", event.kind) from e

    return Acknowledgement(event_id=event.id, kind=event.kind, handled=True)
