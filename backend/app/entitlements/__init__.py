"""Entitlements domain models and services."""

from .catalog import DEFAULT_PLAN_CATALOG, PlanCatalog
from .memory import InMemoryUsageRepository
from .models import (
    UNLIMITED,
    CanUseResult,
    FeatureType,
    FeatureUsage,
    IncrementResult,
    PaymentStatus,
    PlanTier,
    Subscription,
    SubscriptionStatus,
    SubscriptionUpdate,
    UsageCounter,
    UsageSnapshot,
)
from .repository import PostgresUsageRepository
from .service import EntitlementService, SubscriptionReader, UsageRepository

__all__ = [
    "DEFAULT_PLAN_CATALOG",
    "PlanCatalog",
    "InMemoryUsageRepository",
    "PostgresUsageRepository",
    "UNLIMITED",
    "CanUseResult",
    "FeatureType",
    "FeatureUsage",
    "IncrementResult",
    "PaymentStatus",
    "PlanTier",
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionUpdate",
    "UsageCounter",
    "UsageSnapshot",
    "EntitlementService",
    "SubscriptionReader",
    "UsageRepository",
]
