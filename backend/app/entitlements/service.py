"""Service responsible for evaluating and consuming feature quotas."""
from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol, Sequence, Union

from ..feature_gates.exceptions import QuotaExceeded
from ..feature_gates.quota import UNLIMITED, evaluate_feature_quota
from .catalog import DEFAULT_PLAN_CATALOG, PlanCatalog
from .models import (
    CanUseResult,
    FeatureType,
    FeatureUsage,
    IncrementResult,
    PlanTier,
    Subscription,
    UsageCounter,
    UsageSnapshot,
)

logger = logging.getLogger("entitlements")


class SubscriptionReader(Protocol):
    """Read access to the subscription store."""

    def get_subscription_for_user(self, user_id: str) -> Optional[Subscription]:
        ...


class UsageRepository(Protocol):
    """Data access layer for usage counters.

    ``increment_if_below`` must be atomic per (user, feature): the limit check
    and the increment happen as one operation relative to concurrent calls.
    """

    def list_counters(self, user_id: str) -> Sequence[UsageCounter]:
        ...

    def get_count(self, user_id: str, feature: FeatureType) -> int:
        ...

    def increment_if_below(self, user_id: str, feature: FeatureType, limit: int) -> Optional[int]:
        ...

    def reset_user(self, user_id: str) -> int:
        ...


class EntitlementService:
    """Resolves a user's plan and enforces per-feature quotas."""

    def __init__(
        self,
        usage_repository: UsageRepository,
        subscription_reader: SubscriptionReader,
        *,
        catalog: PlanCatalog = DEFAULT_PLAN_CATALOG,
    ) -> None:
        self._usage_repository = usage_repository
        self._subscription_reader = subscription_reader
        self._catalog = catalog

    @property
    def catalog(self) -> PlanCatalog:
        return self._catalog

    def get_subscription_status(self, user_id: str) -> Subscription:
        """Return the stored subscription or the implicit free default."""

        subscription = self._subscription_reader.get_subscription_for_user(user_id)
        return subscription or Subscription.free_default(user_id)

    def resolve_plan_tier(self, user_id: str) -> PlanTier:
        subscription = self._subscription_reader.get_subscription_for_user(user_id)
        if subscription is None:
            return PlanTier.FREE
        return subscription.effective_tier

    def get_usage_snapshot(self, user_id: str) -> UsageSnapshot:
        """Report usage against quota for every feature without side effects."""

        plan_tier = self.resolve_plan_tier(user_id)
        limits = self._catalog.limits_for(plan_tier)
        counters = {counter.feature_type: counter for counter in self._usage_repository.list_counters(user_id)}

        features: Dict[FeatureType, FeatureUsage] = {}
        for feature in sorted(self._catalog.feature_types, key=lambda item: item.value):
            counter = counters.get(feature)
            evaluation = evaluate_feature_quota(used=counter.count if counter else 0, limit=limits[feature])
            features[feature] = FeatureUsage(
                used=evaluation.used,
                limit=evaluation.limit,
                unlimited=evaluation.unlimited,
                percentage=evaluation.percentage,
            )

        last_reset_at = max((counter.last_reset_at for counter in counters.values()), default=None)
        return UsageSnapshot(
            user_id=user_id,
            plan_tier=plan_tier,
            features=features,
            last_reset_at=last_reset_at,
        )

    def can_use(self, user_id: str, feature: Union[FeatureType, str]) -> CanUseResult:
        feature_type = self._catalog.parse_feature(feature)
        plan_tier = self.resolve_plan_tier(user_id)
        evaluation = evaluate_feature_quota(
            used=self._usage_repository.get_count(user_id, feature_type),
            limit=self._catalog.quota_for(plan_tier, feature_type),
        )
        return CanUseResult(
            can_use=evaluation.allowed,
            used=evaluation.used,
            limit=evaluation.limit,
            unlimited=evaluation.unlimited,
            plan_tier=plan_tier,
        )

    def try_increment(self, user_id: str, feature: Union[FeatureType, str]) -> int:
        """Consume one unit of ``feature`` and return the new usage count.

        Raises :class:`QuotaExceeded` without touching the counter when the
        plan's quota is already used up.
        """

        return self.increment_usage(user_id, feature).new_count

    def increment_usage(self, user_id: str, feature: Union[FeatureType, str]) -> IncrementResult:
        """Like :meth:`try_increment`, also reporting the plan and limit that were enforced."""

        feature_type = self._catalog.parse_feature(feature)
        plan_tier = self.resolve_plan_tier(user_id)
        limit = self._catalog.quota_for(plan_tier, feature_type)

        new_count = self._usage_repository.increment_if_below(user_id, feature_type, limit)
        if new_count is None:
            used = self._usage_repository.get_count(user_id, feature_type)
            logger.info(
                "Quota exceeded user=%s feature=%s used=%s limit=%s plan=%s",
                user_id,
                feature_type.value,
                used,
                limit,
                plan_tier.value,
            )
            raise QuotaExceeded(used=used, limit=limit, feature=feature_type.value)

        logger.debug(
            "Usage incremented user=%s feature=%s count=%s limit=%s",
            user_id,
            feature_type.value,
            new_count,
            limit,
        )
        return IncrementResult(
            new_count=new_count,
            limit=limit,
            unlimited=limit == UNLIMITED,
            plan_tier=plan_tier,
        )

    def reset_user_usage(self, user_id: str) -> int:
        """Zero every usage counter of ``user_id``; no quota check applies."""

        reset = self._usage_repository.reset_user(user_id)
        logger.info("Usage reset user=%s counters=%s", user_id, reset)
        return reset
