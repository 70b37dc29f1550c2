"""In-process usage store suitable for tests and local development."""
from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from .models import FeatureType, UsageCounter

_CounterKey = Tuple[str, FeatureType]


class InMemoryUsageRepository:
    """Usage counters held in a dict, serialized by one lock per counter."""

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._counters: Dict[_CounterKey, UsageCounter] = {}
        self._locks: Dict[_CounterKey, Lock] = {}
        self._registry_lock = Lock()

    def _lock_for(self, key: _CounterKey) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = Lock()
            return lock

    def _keys_for_user(self, user_id: str) -> List[_CounterKey]:
        with self._registry_lock:
            return [key for key in self._counters if key[0] == user_id]

    def _store(self, counter: UsageCounter) -> None:
        with self._registry_lock:
            self._counters[(counter.user_id, counter.feature_type)] = counter

    def list_counters(self, user_id: str) -> List[UsageCounter]:
        with self._registry_lock:
            counters = [counter for key, counter in self._counters.items() if key[0] == user_id]
        return sorted(counters, key=lambda counter: counter.feature_type.value)

    def get_count(self, user_id: str, feature: FeatureType) -> int:
        with self._registry_lock:
            counter = self._counters.get((user_id, feature))
        return counter.count if counter else 0

    def increment_if_below(self, user_id: str, feature: FeatureType, limit: int) -> Optional[int]:
        key = (user_id, feature)
        with self._lock_for(key):
            with self._registry_lock:
                current = self._counters.get(key)
            if current is None:
                current = UsageCounter(user_id=user_id, feature_type=feature, count=0, last_reset_at=self._clock())
            if limit >= 0 and current.count >= limit:
                return None
            updated = current.model_copy(update={"count": current.count + 1})
            self._store(updated)
            return updated.count

    def reset_user(self, user_id: str) -> int:
        reset = 0
        now = self._clock()
        for key in self._keys_for_user(user_id):
            with self._lock_for(key):
                with self._registry_lock:
                    current = self._counters[key]
                self._store(current.model_copy(update={"count": 0, "last_reset_at": now}))
                reset += 1
        return reset


__all__ = ["InMemoryUsageRepository"]
