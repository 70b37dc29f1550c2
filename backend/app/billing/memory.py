"""In-process subscription store and user directory for tests and local development."""
from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, Optional, Set

from ..db.connection import StorageFailure
from ..entitlements.models import Subscription, SubscriptionUpdate


class InMemorySubscriptionRepository:
    """Subscriptions keyed by user id with a secondary index on the billing reference."""

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._subscriptions: Dict[str, Subscription] = {}
        self._ref_index: Dict[str, str] = {}
        self._webhook_events: Set[str] = set()
        self._lock = Lock()

    def add(self, subscription: Subscription) -> Subscription:
        with self._lock:
            previous = self._subscriptions.get(subscription.user_id)
            self._put(subscription, previous=previous, operation="subscriptions.add")
        return subscription

    def get_subscription_for_user(self, user_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(user_id)

    def get_subscription_by_ref(self, subscription_ref: str) -> Optional[Subscription]:
        with self._lock:
            user_id = self._ref_index.get(subscription_ref)
            return self._subscriptions.get(user_id) if user_id else None

    def upsert_for_user(self, user_id: str, update: SubscriptionUpdate) -> Subscription:
        with self._lock:
            current = self._subscriptions.get(user_id)
            now = self._clock()
            if current is None:
                base = Subscription.free_default(user_id).model_dump()
                base.update(created_at=now)
            else:
                base = current.model_dump()
            base.update(update.changes(), updated_at=now)
            subscription = Subscription(**base)
            self._put(subscription, previous=current, operation="subscriptions.upsert_for_user")
            return subscription

    def update_by_ref(self, subscription_ref: str, update: SubscriptionUpdate) -> Optional[Subscription]:
        with self._lock:
            user_id = self._ref_index.get(subscription_ref)
            current = self._subscriptions.get(user_id) if user_id else None
            if current is None:
                return None
            data = current.model_dump()
            data.update(update.changes(), updated_at=self._clock())
            subscription = Subscription(**data)
            self._put(subscription, previous=current, operation="subscriptions.update_by_ref")
            return subscription

    def has_webhook_event(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._webhook_events

    def record_webhook_event(self, event_id: str, event_type: str) -> bool:
        with self._lock:
            if event_id in self._webhook_events:
                return False
            self._webhook_events.add(event_id)
            return True

    def _put(self, subscription: Subscription, previous: Optional[Subscription], operation: str) -> None:
        ref = subscription.billing_subscription_ref
        owner = self._ref_index.get(ref) if ref else None
        if owner is not None and owner != subscription.user_id:
            # billing_subscription_ref is unique, as in user_subscriptions
            raise StorageFailure(operation)
        if previous is not None and previous.billing_subscription_ref:
            self._ref_index.pop(previous.billing_subscription_ref, None)
        self._subscriptions[subscription.user_id] = subscription
        if ref:
            self._ref_index[ref] = subscription.user_id


class InMemoryUserDirectory:
    """Email to user id lookup standing in for the identity provider."""

    def __init__(self, users: Optional[Dict[str, str]] = None) -> None:
        self._users: Dict[str, str] = {}
        for email, user_id in (users or {}).items():
            self.register(email, user_id)

    def register(self, email: str, user_id: str) -> None:
        self._users[email.strip().lower()] = user_id

    def find_user_id_by_email(self, email: str) -> Optional[str]:
        return self._users.get(email.strip().lower())


__all__ = ["InMemorySubscriptionRepository", "InMemoryUserDirectory"]
