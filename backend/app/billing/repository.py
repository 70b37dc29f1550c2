"""Persistence layer for subscription state and the webhook ledger."""
from __future__ import annotations

from typing import Any, Dict, Optional

from psycopg2 import sql
from psycopg2.extensions import connection as PgConnection

from ..db.connection import dict_cursor
from ..entitlements.models import (
    PaymentStatus,
    PlanTier,
    Subscription,
    SubscriptionStatus,
    SubscriptionUpdate,
)

_SUBSCRIPTION_COLUMNS = (
    "user_id",
    "billing_customer_ref",
    "billing_subscription_ref",
    "status",
    "plan_tier",
    "current_period_start",
    "current_period_end",
    "payment_status",
    "last_payment_at",
    "created_at",
    "updated_at",
)


def _row_to_subscription(row: dict) -> Subscription:
    return Subscription(
        user_id=row["user_id"],
        billing_customer_ref=row.get("billing_customer_ref"),
        billing_subscription_ref=row.get("billing_subscription_ref"),
        status=SubscriptionStatus(row["status"]),
        plan_tier=PlanTier(row["plan_tier"]),
        current_period_start=row.get("current_period_start"),
        current_period_end=row.get("current_period_end"),
        payment_status=PaymentStatus(row["payment_status"]),
        last_payment_at=row.get("last_payment_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _column_values(update: SubscriptionUpdate) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for column, value in update.changes().items():
        values[column] = value.value if hasattr(value, "value") else value
    return values


def _select_columns() -> sql.Composed:
    return sql.SQL(", ").join(sql.Identifier(column) for column in _SUBSCRIPTION_COLUMNS)


class PostgresSubscriptionRepository:
    """Concrete subscription store backed by ``user_subscriptions``."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def get_subscription_for_user(self, user_id: str) -> Optional[Subscription]:
        with dict_cursor(self._conn, "subscriptions.get_for_user") as cursor:
            cursor.execute(
                sql.SQL("SELECT {columns} FROM user_subscriptions WHERE user_id = %s LIMIT 1").format(
                    columns=_select_columns()
                ),
                (user_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def get_subscription_by_ref(self, subscription_ref: str) -> Optional[Subscription]:
        with dict_cursor(self._conn, "subscriptions.get_by_ref") as cursor:
            cursor.execute(
                sql.SQL(
                    "SELECT {columns} FROM user_subscriptions WHERE billing_subscription_ref = %s LIMIT 1"
                ).format(columns=_select_columns()),
                (subscription_ref,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def upsert_for_user(self, user_id: str, update: SubscriptionUpdate) -> Subscription:
        """Create the user's subscription row or overwrite the given fields."""

        values = _column_values(update)
        columns = ["user_id", *values]
        params = {"user_id": user_id, **values}

        if values:
            conflict_action = sql.SQL("DO UPDATE SET {assignments}, updated_at = NOW()").format(
                assignments=sql.SQL(", ").join(
                    sql.SQL("{column} = EXCLUDED.{column}").format(column=sql.Identifier(column))
                    for column in values
                )
            )
        else:
            conflict_action = sql.SQL("DO UPDATE SET updated_at = NOW()")

        query = sql.SQL(
            """
            INSERT INTO user_subscriptions ({columns})
            VALUES ({placeholders})
            ON CONFLICT (user_id) {conflict_action}
            RETURNING {returning}
            """
        ).format(
            columns=sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            placeholders=sql.SQL(", ").join(sql.Placeholder(column) for column in columns),
            conflict_action=conflict_action,
            returning=_select_columns(),
        )
        with dict_cursor(self._conn, "subscriptions.upsert_for_user") as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist subscription")
            return _row_to_subscription(row)

    def update_by_ref(self, subscription_ref: str, update: SubscriptionUpdate) -> Optional[Subscription]:
        """Overwrite fields of the subscription holding ``subscription_ref``."""

        values = _column_values(update)
        assignments = [
            sql.SQL("{column} = {value}").format(column=sql.Identifier(column), value=sql.Placeholder(column))
            for column in values
        ]
        assignments.append(sql.SQL("updated_at = NOW()"))
        query = sql.SQL(
            """
            UPDATE user_subscriptions
            SET {assignments}
            WHERE billing_subscription_ref = {ref}
            RETURNING {returning}
            """
        ).format(
            assignments=sql.SQL(", ").join(assignments),
            ref=sql.Placeholder("subscription_ref"),
            returning=_select_columns(),
        )
        with dict_cursor(self._conn, "subscriptions.update_by_ref") as cursor:
            cursor.execute(query, {**values, "subscription_ref": subscription_ref})
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def has_webhook_event(self, event_id: str) -> bool:
        with dict_cursor(self._conn, "webhooks.has_event") as cursor:
            cursor.execute(
                "SELECT 1 AS seen FROM billing_webhook_events WHERE event_id = %s LIMIT 1",
                (event_id,),
            )
            return cursor.fetchone() is not None

    def record_webhook_event(self, event_id: str, event_type: str) -> bool:
        with dict_cursor(self._conn, "webhooks.record_event") as cursor:
            cursor.execute(
                """
                INSERT INTO billing_webhook_events (event_id, event_type, processed_at)
                VALUES (%s, %s, NOW())
                ON CONFLICT (event_id) DO NOTHING
                """,
                (event_id, event_type),
            )
            return cursor.rowcount > 0


class PostgresUserDirectory:
    """Reads user identities from the identity provider's ``users`` table."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def find_user_id_by_email(self, email: str) -> Optional[str]:
        with dict_cursor(self._conn, "users.find_by_email") as cursor:
            cursor.execute(
                "SELECT id FROM users WHERE LOWER(email) = LOWER(%s) LIMIT 1",
                (email.strip(),),
            )
            row = cursor.fetchone()
            return str(row["id"]) if row else None


__all__ = ["PostgresSubscriptionRepository", "PostgresUserDirectory"]
