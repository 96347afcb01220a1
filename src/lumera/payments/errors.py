"""Exceptions raised by webhook reconciliation and the billing endpoints.

The HTTP layer maps these onto status codes: verification failures are
4xx so Stripe's own retry policy decides what happens next, handler
failures are 5xx so Stripe redelivers.
"""


class PaymentsError(Exception):
    """Base class for payment processing errors."""

    status_code = 500


class VerificationError(PaymentsError):
    """Webhook payload could not be authenticated or decoded."""

    status_code = 400


class HandlerError(PaymentsError):
    """A reconciliation handler failed after the event was verified."""

    def __init__(self, message: str, event_kind: str | None = None):
        self.event_kind = event_kind
        super().__init__(message)


class ReconciliationError(HandlerError):
    """Stored state violates an invariant (e.g. one subscription id, two users).

    Redelivery cannot fix this; it needs an operator.
    """


class StoreUnavailable(HandlerError):
    """Transient persistence failure. Safe to retry."""


class CheckoutError(PaymentsError, ValueError):
    """Invalid checkout or cancellation request."""

    status_code = 400
