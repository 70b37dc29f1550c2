from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import psycopg2
import psycopg2.extras
import pytest
from psycopg2 import sql

from backend.app.billing import PostgresSubscriptionRepository, PostgresUserDirectory
from backend.app.db import StorageFailure
from backend.app.entitlements import (
    FeatureType,
    PaymentStatus,
    PlanTier,
    PostgresUsageRepository,
    SubscriptionStatus,
    SubscriptionUpdate,
)

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


class FakeCursor:
    def __init__(self, rows: Sequence[Optional[dict]] = (), *, rowcount: int = 0, error: Optional[Exception] = None):
        self._rows = list(rows)
        self.rowcount = rowcount
        self.error = error
        self.executed: List[tuple[Any, Any]] = []
        self.closed = False

    def execute(self, query, params=None) -> None:
        if self.error is not None:
            raise self.error
        self.executed.append((query, params))

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, cursor: FakeCursor) -> None:
        self._cursor = cursor
        self.cursor_factory = None

    def cursor(self, cursor_factory=None) -> FakeCursor:
        self.cursor_factory = cursor_factory
        return self._cursor


def test_list_counters_maps_rows() -> None:
    cursor = FakeCursor(
        [
            {"user_id": "u1", "feature_type": "assessment", "usage_count": 2, "last_reset_at": NOW},
            {"user_id": "u1", "feature_type": "journal_entry", "usage_count": 0, "last_reset_at": NOW},
        ]
    )
    conn = FakeConnection(cursor)
    repo = PostgresUsageRepository(conn=conn)

    counters = repo.list_counters("u1")

    assert [(c.feature_type, c.count) for c in counters] == [
        (FeatureType.ASSESSMENT, 2),
        (FeatureType.JOURNAL_ENTRY, 0),
    ]
    assert conn.cursor_factory is psycopg2.extras.RealDictCursor
    assert cursor.closed is True


def test_increment_if_below_returns_new_count() -> None:
    cursor = FakeCursor([{"usage_count": 3}])
    repo = PostgresUsageRepository(conn=FakeConnection(cursor))

    assert repo.increment_if_below("u1", FeatureType.HABIT_TRACKING, 20) == 3

    insert, update = cursor.executed
    assert "ON CONFLICT (user_id, feature_type) DO NOTHING" in insert[0]
    assert insert[1] == ("u1", "habit_tracking")
    assert "usage_count < %(limit)s" in update[0]
    assert update[1] == {"user_id": "u1", "feature_type": "habit_tracking", "limit": 20}


def test_increment_if_below_reports_rejection() -> None:
    repo = PostgresUsageRepository(conn=FakeConnection(FakeCursor([None])))

    assert repo.increment_if_below("u1", FeatureType.ASSESSMENT, 2) is None


def test_get_count_defaults_to_zero_and_reset_returns_rowcount() -> None:
    assert PostgresUsageRepository(conn=FakeConnection(FakeCursor())).get_count("u1", FeatureType.AI_INSIGHTS) == 0

    cursor = FakeCursor(rowcount=4)
    assert PostgresUsageRepository(conn=FakeConnection(cursor)).reset_user("u1") == 4
    assert cursor.executed[0][1] == ("u1",)


def test_driver_errors_become_storage_failures() -> None:
    cursor = FakeCursor(error=psycopg2.OperationalError("server closed the connection"))
    repo = PostgresUsageRepository(conn=FakeConnection(cursor))

    with pytest.raises(StorageFailure) as exc:
        repo.increment_if_below("u1", FeatureType.ASSESSMENT, 2)

    assert exc.value.operation == "usage.increment_if_below"
    assert isinstance(exc.value.__cause__, psycopg2.OperationalError)
    assert cursor.closed is True


def _subscription_row(**overrides) -> dict:
    row = {
        "user_id": "u1",
        "billing_customer_ref": "cus_1",
        "billing_subscription_ref": "sub_1",
        "status": "active",
        "plan_tier": "premium",
        "current_period_start": NOW,
        "current_period_end": None,
        "payment_status": "failed",
        "last_payment_at": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def _parts(query) -> List[Any]:
    if isinstance(query, sql.Composed):
        return [part for item in query.seq for part in _parts(item)]
    return [query]


def _identifiers(query) -> List[str]:
    return [part.strings[0] for part in _parts(query) if isinstance(part, sql.Identifier)]


def _placeholders(query) -> List[str]:
    return [part.name for part in _parts(query) if isinstance(part, sql.Placeholder)]


def _sql_text(query) -> str:
    return " ".join(" ".join(part.string.split()) for part in _parts(query) if isinstance(part, sql.SQL))


def test_subscription_row_mapping() -> None:
    repo = PostgresSubscriptionRepository(conn=FakeConnection(FakeCursor([_subscription_row()])))

    subscription = repo.get_subscription_for_user("u1")

    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.plan_tier == PlanTier.PREMIUM
    assert subscription.payment_status == PaymentStatus.FAILED
    assert subscription.billing_subscription_ref == "sub_1"


def test_missing_subscription_returns_none() -> None:
    repo = PostgresSubscriptionRepository(conn=FakeConnection(FakeCursor()))

    assert repo.get_subscription_by_ref("sub_missing") is None


SUBSCRIPTION_COLUMNS = list(_subscription_row())


def test_upsert_for_user_writes_only_given_columns() -> None:
    cursor = FakeCursor([_subscription_row(payment_status="pending")])
    repo = PostgresSubscriptionRepository(conn=FakeConnection(cursor))

    subscription = repo.upsert_for_user(
        "u1",
        SubscriptionUpdate(billing_subscription_ref="sub_1", status=SubscriptionStatus.ACTIVE),
    )

    assert subscription.payment_status == PaymentStatus.PENDING
    (query, params), = cursor.executed
    assert params == {"user_id": "u1", "billing_subscription_ref": "sub_1", "status": "active"}
    assert _placeholders(query) == ["user_id", "billing_subscription_ref", "status"]
    identifiers = _identifiers(query)
    assert identifiers[:3] == ["user_id", "billing_subscription_ref", "status"]
    assert identifiers[3:7] == ["billing_subscription_ref", "billing_subscription_ref", "status", "status"]
    assert identifiers[7:] == SUBSCRIPTION_COLUMNS
    text = _sql_text(query)
    assert "ON CONFLICT (user_id) DO UPDATE SET" in text
    assert "= EXCLUDED." in text
    assert ", updated_at = NOW()" in text


def test_upsert_for_user_without_changes_only_touches_updated_at() -> None:
    cursor = FakeCursor([_subscription_row()])
    repo = PostgresSubscriptionRepository(conn=FakeConnection(cursor))

    repo.upsert_for_user("u1", SubscriptionUpdate())

    (query, params), = cursor.executed
    assert params == {"user_id": "u1"}
    assert _placeholders(query) == ["user_id"]
    assert "DO UPDATE SET updated_at = NOW()" in _sql_text(query)
    assert "EXCLUDED" not in _sql_text(query)


def test_upsert_for_user_without_returned_row_raises() -> None:
    repo = PostgresSubscriptionRepository(conn=FakeConnection(FakeCursor()))

    with pytest.raises(RuntimeError):
        repo.upsert_for_user("u1", SubscriptionUpdate(status=SubscriptionStatus.ACTIVE))


def test_update_by_ref_sets_given_columns() -> None:
    cursor = FakeCursor([_subscription_row(payment_status="failed")])
    repo = PostgresSubscriptionRepository(conn=FakeConnection(cursor))

    subscription = repo.update_by_ref("sub_1", SubscriptionUpdate(payment_status=PaymentStatus.FAILED))

    assert subscription.payment_status == PaymentStatus.FAILED
    (query, params), = cursor.executed
    assert params == {"payment_status": "failed", "subscription_ref": "sub_1"}
    assert _placeholders(query) == ["payment_status", "subscription_ref"]
    assert _identifiers(query) == ["payment_status", *SUBSCRIPTION_COLUMNS]
    text = _sql_text(query)
    assert "UPDATE user_subscriptions SET" in text
    assert ", updated_at = NOW()" in text
    assert "WHERE billing_subscription_ref =" in text


def test_update_by_ref_without_changes_only_touches_updated_at() -> None:
    cursor = FakeCursor([_subscription_row()])
    repo = PostgresSubscriptionRepository(conn=FakeConnection(cursor))

    repo.update_by_ref("sub_1", SubscriptionUpdate())

    (query, params), = cursor.executed
    assert params == {"subscription_ref": "sub_1"}
    assert _placeholders(query) == ["subscription_ref"]
    assert _identifiers(query) == SUBSCRIPTION_COLUMNS
    assert "SET updated_at = NOW()" in _sql_text(query)


def test_update_by_ref_for_unknown_ref_returns_none() -> None:
    cursor = FakeCursor()
    repo = PostgresSubscriptionRepository(conn=FakeConnection(cursor))

    assert repo.update_by_ref("sub_missing", SubscriptionUpdate(status=SubscriptionStatus.CANCELED)) is None
    assert cursor.executed[0][1]["subscription_ref"] == "sub_missing"


def test_webhook_ledger_queries() -> None:
    seen = PostgresSubscriptionRepository(conn=FakeConnection(FakeCursor([{"seen": 1}])))
    assert seen.has_webhook_event("evt_1") is True

    recorded = PostgresSubscriptionRepository(conn=FakeConnection(FakeCursor(rowcount=1)))
    assert recorded.record_webhook_event("evt_2", "payment_failed") is True

    replayed = PostgresSubscriptionRepository(conn=FakeConnection(FakeCursor(rowcount=0)))
    assert replayed.record_webhook_event("evt_2", "payment_failed") is False


def test_user_directory_lookup() -> None:
    cursor = FakeCursor([{"id": 17}])
    directory = PostgresUserDirectory(conn=FakeConnection(cursor))

    assert directory.find_user_id_by_email(" Ada@Example.com ") == "17"
    assert cursor.executed[0][1] == ("Ada@Example.com",)
