"""Typed webhook events and acknowledgements."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import stripe


class EventKind(str, Enum):
    """Stripe event types this service reconciles."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

    @classmethod
    def parse(cls, value: str) -> Optional["EventKind"]:
        """Return the matching kind, or None for types we do not handle."""
        try:
            return cls(value)
        except ValueError:
            return None


def to_plain(value: Any) -> Any:
    """Recursively convert Stripe API objects into plain dicts and lists.

    Recent stripe releases no longer make ``StripeObject`` a ``dict``, so
    handlers read fields from the converted copy.
    """
    if isinstance(value, stripe.StripeObject):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


@dataclass(frozen=True)
class VerifiedEvent:
    """A webhook event whose signature has been checked.

    ``kind`` keeps the raw Stripe type string so unknown types can still be
    logged and acknowledged; ``data`` is the event's ``data.object`` as plain dicts.
    """

    id: str
    kind: str
    data: Any = field(default_factory=dict)
    created: Optional[int] = None


@dataclass(frozen=True)
class Acknowledgement:
    """Result returned to Stripe for a processed webhook."""

    event_id: str
    kind: str
    handled: bool

    def to_dict(self) -> dict:
        return {
            "received": True,
            "handled": self.handled,
            "event_id": self.event_id,
        }
