"""Domain models for subscriptions, usage counters, and quota snapshots."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..feature_gates.quota import UNLIMITED


class PlanTier(str, Enum):
    """Subscription levels that determine feature quotas."""

    FREE = "free"
    PRO = "pro"
    PREMIUM = "premium"


class FeatureType(str, Enum):
    """Metered product features."""

    ASSESSMENT = "assessment"
    JOURNAL_ENTRY = "journal_entry"
    HABIT_TRACKING = "habit_tracking"
    AI_INSIGHTS = "ai_insights"


class SubscriptionStatus(str, Enum):
    """Lifecycle state for subscriptions."""

    FREE = "free"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class PaymentStatus(str, Enum):
    """Outcome of the most recent invoice payment."""

    ACTIVE = "active"
    FAILED = "failed"
    PENDING = "pending"


FREE_TIER_STATUSES = frozenset({SubscriptionStatus.FREE, SubscriptionStatus.CANCELED})


class Subscription(BaseModel):
    """Billing state for a single user as synchronized from the billing provider."""

    user_id: str
    billing_customer_ref: Optional[str] = None
    billing_subscription_ref: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.FREE
    plan_tier: PlanTier = PlanTier.FREE
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    last_payment_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _free_statuses_imply_free_tier(cls, data: Any) -> Any:
        if isinstance(data, dict):
            status = data.get("status")
            if status is not None and SubscriptionStatus(status) in FREE_TIER_STATUSES:
                data = {**data, "plan_tier": PlanTier.FREE}
        return data

    @classmethod
    def free_default(cls, user_id: str) -> "Subscription":
        """Return the implicit subscription of a user without a billing record."""

        return cls(user_id=user_id)

    @property
    def effective_tier(self) -> PlanTier:
        if self.status in FREE_TIER_STATUSES:
            return PlanTier.FREE
        return self.plan_tier


class SubscriptionUpdate(BaseModel):
    """Partial set of subscription fields written by a billing transition."""

    billing_customer_ref: Optional[str] = None
    billing_subscription_ref: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
    plan_tier: Optional[PlanTier] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    payment_status: Optional[PaymentStatus] = None
    last_payment_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly provided by the caller, including explicit ``None``."""

        return self.model_dump(exclude_unset=True)


class UsageCounter(BaseModel):
    """Number of uses of one feature by one user since the last reset."""

    user_id: str
    feature_type: FeatureType
    count: int = Field(default=0, ge=0)
    last_reset_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class FeatureUsage(BaseModel):
    """Quota position of a single feature."""

    used: int = Field(ge=0)
    limit: int
    unlimited: bool
    percentage: float = Field(ge=0, le=100)

    model_config = ConfigDict(frozen=True)


class UsageSnapshot(BaseModel):
    """Usage of every metered feature for a user under their current plan."""

    user_id: str
    plan_tier: PlanTier
    features: Dict[FeatureType, FeatureUsage]
    last_reset_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class CanUseResult(BaseModel):
    """Answer to whether a user may consume one more unit of a feature."""

    can_use: bool
    used: int
    limit: int
    unlimited: bool
    plan_tier: PlanTier

    model_config = ConfigDict(frozen=True)


class IncrementResult(BaseModel):
    """Usage count after a successful increment and the quota it was checked against."""

    new_count: int
    limit: int
    unlimited: bool
    plan_tier: PlanTier

    model_config = ConfigDict(frozen=True)
