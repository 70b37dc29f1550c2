"""API schemas for subscription and billing webhook endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import BillingEventKind, BillingEventOutcome
from ..entitlements.models import PaymentStatus, PlanTier, Subscription, SubscriptionStatus


class SubscriptionStatusResponse(BaseModel):
    status: SubscriptionStatus
    plan_type: PlanTier = Field(alias="planType")
    current_period_start: Optional[datetime] = Field(alias="currentPeriodStart", default=None)
    current_period_end: Optional[datetime] = Field(alias="currentPeriodEnd", default=None)
    payment_status: PaymentStatus = Field(alias="paymentStatus")
    billing_customer_id: Optional[str] = Field(alias="billingCustomerId", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> "SubscriptionStatusResponse":
        return cls(
            status=subscription.status,
            plan_type=subscription.effective_tier,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            payment_status=subscription.payment_status,
            billing_customer_id=subscription.billing_customer_ref,
        )


class WebhookAckResponse(BaseModel):
    received: bool = True
    event_id: Optional[str] = Field(alias="eventId", default=None)
    kind: BillingEventKind
    outcome: BillingEventOutcome

    model_config = ConfigDict(populate_by_name=True)
