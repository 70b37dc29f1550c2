"""Static catalog mapping plan tiers to per-feature quotas."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import FrozenSet, Mapping, Union

from ..feature_gates.exceptions import InvalidFeature
from .models import UNLIMITED, FeatureType, PlanTier

FeatureLimits = Mapping[FeatureType, int]


@dataclass(frozen=True)
class PlanCatalog:
    """Immutable plan to quota table injected into the entitlement service.

    The free tier's feature set defines which features exist at all; a tier
    missing from the table falls back to the free tier's limits.
    """

    limits: Mapping[PlanTier, FeatureLimits]

    def __post_init__(self) -> None:
        if PlanTier.FREE not in self.limits:
            raise ValueError("Plan catalog must define limits for the free tier")
        frozen = {
            tier: MappingProxyType(dict(feature_limits))
            for tier, feature_limits in self.limits.items()
        }
        free_features = set(frozen[PlanTier.FREE])
        for tier, feature_limits in frozen.items():
            missing = free_features - set(feature_limits)
            if missing:
                names = ", ".join(sorted(feature.value for feature in missing))
                raise ValueError(f"Plan tier {tier.value!r} is missing limits for: {names}")
            for feature, quota in feature_limits.items():
                if quota < UNLIMITED:
                    raise ValueError(
                        f"Quota for {tier.value}/{feature.value} must be >= {UNLIMITED}, got {quota}"
                    )
        object.__setattr__(self, "limits", MappingProxyType(frozen))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping[str, int]]) -> "PlanCatalog":
        """Build a catalog from plain string keys, e.g. loaded from JSON."""

        limits = {
            PlanTier(tier): {FeatureType(feature): int(quota) for feature, quota in features.items()}
            for tier, features in raw.items()
        }
        return cls(limits=limits)

    @property
    def feature_types(self) -> FrozenSet[FeatureType]:
        return frozenset(self.limits[PlanTier.FREE])

    def limits_for(self, plan_tier: Union[PlanTier, str, None]) -> FeatureLimits:
        """Return feature quotas for a tier, defaulting to the free tier."""

        try:
            tier = PlanTier(plan_tier) if plan_tier is not None else PlanTier.FREE
        except ValueError:
            tier = PlanTier.FREE
        return self.limits.get(tier, self.limits[PlanTier.FREE])

    def parse_feature(self, feature: Union[FeatureType, str]) -> FeatureType:
        """Validate a feature key against the catalog, raising ``InvalidFeature``."""

        try:
            feature_type = FeatureType(feature)
        except ValueError as exc:
            raise InvalidFeature(feature) from exc
        if feature_type not in self.feature_types:
            raise InvalidFeature(feature_type.value)
        return feature_type

    def quota_for(self, plan_tier: Union[PlanTier, str, None], feature: FeatureType) -> int:
        return self.limits_for(plan_tier)[feature]


DEFAULT_PLAN_CATALOG = PlanCatalog(
    limits={
        PlanTier.FREE: {
            FeatureType.ASSESSMENT: 2,
            FeatureType.JOURNAL_ENTRY: 5,
            FeatureType.HABIT_TRACKING: 3,
            FeatureType.AI_INSIGHTS: 1,
        },
        PlanTier.PRO: {
            FeatureType.ASSESSMENT: 10,
            FeatureType.JOURNAL_ENTRY: 50,
            FeatureType.HABIT_TRACKING: 20,
            FeatureType.AI_INSIGHTS: 10,
        },
        PlanTier.PREMIUM: {
            FeatureType.ASSESSMENT: UNLIMITED,
            FeatureType.JOURNAL_ENTRY: UNLIMITED,
            FeatureType.HABIT_TRACKING: UNLIMITED,
            FeatureType.AI_INSIGHTS: UNLIMITED,
        },
    }
)
