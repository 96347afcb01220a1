"""Table-name constants, status enum and the subscription record type."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional


class Table:
    """Database table names."""

    SUBSCRIPTIONS = "subscriptions"
    PAYMENTS = "payments"
    SCHEMA_MIGRATIONS = "schema_migrations"


class SubscriptionStatus(str, Enum):
    """Subscription status values written by this service.

    Statuses reported by Stripe on ``customer.subscription.updated``
    (``trialing``, ``unpaid``, ``incomplete``...) are stored verbatim and
    are not members of this enum.
    """

    NONE = "none"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment ledger row status."""

    COMPLETED = "completed"


@dataclass(frozen=True)
class SubscriptionRecord:
    """One row of the subscriptions table."""

    user_id: str
    provider_customer_id: Optional[str]
    provider_subscription_id: Optional[str]
    status: str
    period_end: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SubscriptionRecord":
        return cls(
            user_id=row["user_id"],
            provider_customer_id=row["provider_customer_id"],
            provider_subscription_id=row["provider_subscription_id"],
            status=row["status"],
            period_end=row["period_end"],
            updated_at=row["updated_at"],
        )

    @property
    def is_premium(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE.value
