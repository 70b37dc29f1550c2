"""Persistence layer for per-user feature usage counters."""
from __future__ import annotations

from typing import List, Optional

from psycopg2.extensions import connection as PgConnection

from ..db.connection import dict_cursor
from .models import FeatureType, UsageCounter


def _row_to_usage_counter(row: dict) -> UsageCounter:
    return UsageCounter(
        user_id=row["user_id"],
        feature_type=FeatureType(row["feature_type"]),
        count=int(row["usage_count"]),
        last_reset_at=row["last_reset_at"],
    )


class PostgresUsageRepository:
    """Concrete usage store backed by the ``user_usage`` table.

    Increments are a single conditional ``UPDATE``: PostgreSQL locks the row,
    so concurrent increments of the same counter are applied one after the
    other and each re-checks the limit against the committed count.
    """

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def list_counters(self, user_id: str) -> List[UsageCounter]:
        with dict_cursor(self._conn, "usage.list_counters") as cursor:
            cursor.execute(
                """
                SELECT user_id, feature_type, usage_count, last_reset_at
                FROM user_usage
                WHERE user_id = %s
                ORDER BY feature_type
                """,
                (user_id,),
            )
            rows = cursor.fetchall() or []
            return [_row_to_usage_counter(row) for row in rows]

    def get_count(self, user_id: str, feature: FeatureType) -> int:
        with dict_cursor(self._conn, "usage.get_count") as cursor:
            cursor.execute(
                """
                SELECT usage_count
                FROM user_usage
                WHERE user_id = %s AND feature_type = %s
                LIMIT 1
                """,
                (user_id, feature.value),
            )
            row = cursor.fetchone()
            return int(row["usage_count"]) if row else 0

    def increment_if_below(self, user_id: str, feature: FeatureType, limit: int) -> Optional[int]:
        """Add one use unless ``limit`` is reached; ``None`` means rejected."""

        with dict_cursor(self._conn, "usage.increment_if_below") as cursor:
            cursor.execute(
                """
                INSERT INTO user_usage (user_id, feature_type, usage_count)
                VALUES (%s, %s, 0)
                ON CONFLICT (user_id, feature_type) DO NOTHING
                """,
                (user_id, feature.value),
            )
            cursor.execute(
                """
                UPDATE user_usage
                SET usage_count = usage_count + 1,
                    updated_at = NOW()
                WHERE user_id = %(user_id)s
                  AND feature_type = %(feature_type)s
                  AND (%(limit)s < 0 OR usage_count < %(limit)s)
                RETURNING usage_count
                """,
                {"user_id": user_id, "feature_type": feature.value, "limit": limit},
            )
            row = cursor.fetchone()
            return int(row["usage_count"]) if row else None

    def reset_user(self, user_id: str) -> int:
        with dict_cursor(self._conn, "usage.reset_user") as cursor:
            cursor.execute(
                """
                UPDATE user_usage
                SET usage_count = 0,
                    last_reset_at = NOW(),
                    updated_at = NOW()
                WHERE user_id = %s
                """,
                (user_id,),
            )
            return cursor.rowcount


__all__ = ["PostgresUsageRepository"]
