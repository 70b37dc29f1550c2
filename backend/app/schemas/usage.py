"""API schemas for usage metering endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import CanUseResult, FeatureUsage, IncrementResult, PlanTier, UsageSnapshot


class FeatureUsageResponse(BaseModel):
    used: int
    limit: int
    unlimited: bool
    percentage: float

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_usage(cls, usage: FeatureUsage) -> "FeatureUsageResponse":
        return cls(used=usage.used, limit=usage.limit, unlimited=usage.unlimited, percentage=usage.percentage)


class UsageStatsResponse(BaseModel):
    plan_type: PlanTier = Field(alias="planType")
    usage: Dict[str, FeatureUsageResponse]
    last_reset_date: Optional[datetime] = Field(alias="lastResetDate", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_snapshot(cls, snapshot: UsageSnapshot) -> "UsageStatsResponse":
        return cls(
            plan_type=snapshot.plan_tier,
            usage={
                feature.value: FeatureUsageResponse.from_usage(usage)
                for feature, usage in snapshot.features.items()
            },
            last_reset_date=snapshot.last_reset_at,
        )


class CanUseResponse(BaseModel):
    can_use: bool = Field(alias="canUse")
    current_usage: int = Field(alias="currentUsage")
    limit: int
    unlimited: bool
    plan_type: PlanTier = Field(alias="planType")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: CanUseResult) -> "CanUseResponse":
        return cls(
            can_use=result.can_use,
            current_usage=result.used,
            limit=result.limit,
            unlimited=result.unlimited,
            plan_type=result.plan_tier,
        )


class IncrementResponse(BaseModel):
    success: bool = True
    new_usage: int = Field(alias="newUsage")
    limit: int
    unlimited: bool
    plan_type: PlanTier = Field(alias="planType")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: IncrementResult) -> "IncrementResponse":
        return cls(
            new_usage=result.new_count,
            limit=result.limit,
            unlimited=result.unlimited,
            plan_type=result.plan_tier,
        )


class ResetResponse(BaseModel):
    message: str = "Usage reset successfully"
    counters_reset: int = Field(alias="countersReset", default=0)

    model_config = ConfigDict(populate_by_name=True)
