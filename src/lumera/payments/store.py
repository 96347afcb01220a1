"""Persisted subscription records.

Every mutation here is a single keyed statement, atomic in PostgreSQL, so
concurrent or duplicate webhook deliveries never need an application lock.
Writes that would not change a row are skipped, which keeps redelivered
events from touching ``updated_at``.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import asyncpg

from lumera.db.models import PaymentStatus, SubscriptionRecord, Table
from lumera.db.pool import UNAVAILABLE_ERRORS
from lumera.payments.errors import ReconciliationError, StoreUnavailable

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = (
    "user_id, provider_customer_id, provider_subscription_id, "
    "status, period_end, updated_at"
)


def _rows_affected(status: str) -> int:
    """Row count from an asyncpg command tag ('UPDATE 1', 'INSERT 0 1')."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class SubscriptionStore:
    """Subscription table access over an asyncpg pool."""

    def __init__(self, pool: asyncpg.Pool, ledger_enabled: bool = True):
        self._pool = pool
        self._ledger_enabled = ledger_enabled

    async def _query(self, method: str, query: str, *args: Any) -> Any:
        try:
            async with self._pool.acquire() as conn:
                return await getattr(conn, method)(query, *args)
        except UNAVAILABLE_ERRORS as e:
            raise StoreUnavailable(f"Database unavailable: {e}") from e

    async def find_by_user_id(self, user_id: str) -> Optional[SubscriptionRecord]:
        row = await self._query(
            "fetchrow",
            f"SELECT {_RECORD_COLUMNS} FROM {Table.SUBSCRIPTIONS} WHERE user_id = $1",
            user_id,
        )
        return SubscriptionRecord.from_row(row) if row else None

    async def find_by_subscription_id(
        self, subscription_id: str
    ) -> Optional[SubscriptionRecord]:
        """Look up the record holding a Stripe subscription id.

        Raises:
            ReconciliationError: If more than one user holds the id
        """
        rows = await self._query(
            "fetch",
            f"""
            SELECT {_RECORD_COLUMNS}
            FROM {Table.SUBSCRIPTIONS}
            WHERE provider_subscription_id = $1
            LIMIT 2
            """,
            subscription_id,
        )
        if len(rows) > 1:
            users = ", ".join(row["user_id"] for row in rows)
            raise ReconciliationError(
                f"Subscription {subscription_id} is held by multiple users: {users}"
            )
        return SubscriptionRecord.from_row(rows[0]) if rows else None

    async def upsert_customer(self, user_id: str, customer_id: str) -> str:
        """Attach a Stripe customer to a user unless one is already attached.

        First writer wins: an existing customer id is never overwritten.

        Returns:
            The customer id stored for the user after the write
        """
        stored = await self._query(
            "fetchval",
            f"""
            INSERT INTO {Table.SUBSCRIPTIONS} (user_id, provider_customer_id)
            VALUES ($1, $2)
            ON CONFLICT (user_id) DO UPDATE SET
                provider_customer_id = EXCLUDED.provider_customer_id,
                updated_at = now()
            WHERE {Table.SUBSCRIPTIONS}.provider_customer_id IS NULL
            RETURNING provider_customer_id
            """,
            user_id,
            customer_id,
        )
        if stored is None:
            # RETURNING is empty when the conflict WHERE skipped the update
            stored = await self._query(
                "fetchval",
                f"SELECT provider_customer_id FROM {Table.SUBSCRIPTIONS} WHERE user_id = $1",
                user_id,
            )
        return stored

    async def apply_status(
        self,
        status: str,
        *,
        user_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        period_end: Optional[datetime] = None,
        customer_id: Optional[str] = None,
        new_subscription_id: Optional[str] = None,
    ) -> bool:
        """Set a subscription status keyed by user id or by subscription id.

        Keyed by ``user_id`` the record is created if missing and may also
        receive a customer id (only if none is stored) and a subscription
        id. Keyed by ``subscription_id`` only existing records are touched.
        A ``period_end`` of None leaves the stored value alone.

        Returns:
            True if a row was inserted or changed

        Raises:
            ValueError: Unless exactly one of user_id / subscription_id is given
            ReconciliationError: If new_subscription_id already belongs to
                another user
            StoreUnavailable: On connection-level database failures
        """
        if (user_id is None) == (subscription_id is None):
            raise ValueError("Pass exactly one of user_id or subscription_id")

        if subscription_id is not None:
            result = await self._query(
                "execute",
                f"""
                UPDATE {Table.SUBSCRIPTIONS} SET
                    status = $2,
                    period_end = COALESCE($3, period_end),
                    updated_at = now()
                WHERE provider_subscription_id = $1
                  AND (
                    status IS DISTINCT FROM $2
                    OR ($3::timestamptz IS NOT NULL AND period_end IS DISTINCT FROM $3)
                  )
                """,
                subscription_id,
                status,
                period_end,
            )
            return _rows_affected(result) > 0

        try:
            result = await self._query(
                "execute",
                f"""
                INSERT INTO {Table.SUBSCRIPTIONS} AS s
                    (user_id, status, period_end, provider_customer_id, provider_subscription_id)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (user_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    period_end = COALESCE(EXCLUDED.period_end, s.period_end),
                    provider_customer_id = COALESCE(s.provider_customer_id, EXCLUDED.provider_customer_id),
                    provider_subscription_id = COALESCE(EXCLUDED.provider_subscription_id, s.provider_subscription_id),
                    updated_at = now()
                WHERE s.status IS DISTINCT FROM EXCLUDED.status
                   OR (EXCLUDED.period_end IS NOT NULL AND s.period_end IS DISTINCT FROM EXCLUDED.period_end)
                   OR (s.provider_customer_id IS NULL AND EXCLUDED.provider_customer_id IS NOT NULL)
                   OR (EXCLUDED.provider_subscription_id IS NOT NULL
                       AND s.provider_subscription_id IS DISTINCT FROM EXCLUDED.provider_subscription_id)
                """,
                user_id,
                status,
                period_end,
                customer_id,
                new_subscription_id,
            )
        except asyncpg.UniqueViolationError as e:
            raise ReconciliationError(
                f"Subscription {new_subscription_id} already belongs to another user "
                f"(attempted for {user_id})"
            ) from e
        return _rows_affected(result) > 0

    async def record_payment(
        self,
        *,
        user_id: str,
        session_id: str,
        subscription_id: Optional[str],
        amount: Optional[Decimal],
        currency: Optional[str],
        region: Optional[str] = None,
    ) -> bool:
        """Insert a payment ledger row once per checkout session."""
        if not self._ledger_enabled:
            return False

        result = await self._query(
            "execute",
            f"""
            INSERT INTO {Table.PAYMENTS}
                (user_id, stripe_session_id, stripe_subscription_id, amount, currency, status, region)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (stripe_session_id) DO NOTHING
            """,
            user_id,
            session_id,
            subscription_id,
            amount,
            currency,
            PaymentStatus.COMPLETED.value,
            region,
        )
        return _rows_affected(result) > 0
