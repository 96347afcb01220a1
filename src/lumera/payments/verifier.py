"""Stripe webhook signature verification."""

import logging
from typing import Optional

import stripe

from lumera.payments.errors import VerificationError
from lumera.payments.events import VerifiedEvent, to_plain

logger = logging.getLogger(__name__)


def verify_event(
    payload: bytes,
    sig_header: Optional[str],
    secret: str,
) -> VerifiedEvent:
    """Authenticate a webhook payload and decode it into a VerifiedEvent.

    The signature is an HMAC over the exact request bytes, so ``payload``
    must be the body as received. Parsing and re-serialising it first
    will make every signature fail.

    Args:
        payload: Raw request body
        sig_header: Stripe-Signature header value
        secret: Webhook signing secret

    Returns:
        VerifiedEvent

    Raises:
        VerificationError: If the secret is unset, the header is missing or
            malformed, the signature does not match, or the body is not JSON
    """
    if not secret:
        raise VerificationError("Webhook signing secret not configured")
    if not sig_header:
        raise VerificationError("Missing signature")

    try:
        event = to_plain(stripe.Webhook.construct_event(payload, sig_header, secret))
    except ValueError as e:
        raise VerificationError("Invalid payload") from e
    except stripe.SignatureVerificationError as e:
        raise VerificationError("Invalid signature") from e

    try:
        return VerifiedEvent(
            id=event["id"],
            kind=event["type"],
            data=event["data"]["object"],
            created=event.get("created"),
        )
    except (KeyError, TypeError) as e:
        raise VerificationError(f"Malformed event: missing {e}") from e
