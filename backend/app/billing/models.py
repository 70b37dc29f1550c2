"""Domain models for billing events and their processing outcomes."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import SubscriptionStatus


class BillingEventKind(str, Enum):
    """Event kinds the processor distinguishes."""

    CHECKOUT_COMPLETED = "checkout_completed"
    SUBSCRIPTION_CHANGED = "subscription_changed"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    UNKNOWN = "unknown"


class _BillingEventBase(BaseModel):
    event_id: Optional[str] = Field(default=None, description="Provider event id used for de-duplication")
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutCompleted(_BillingEventBase):
    kind: Literal["checkout_completed"] = "checkout_completed"
    customer_email: Optional[str] = None
    customer_ref: Optional[str] = None
    subscription_ref: Optional[str] = None


class SubscriptionChanged(_BillingEventBase):
    kind: Literal["subscription_changed"] = "subscription_changed"
    subscription_ref: Optional[str] = None
    customer_ref: Optional[str] = None
    status: SubscriptionStatus
    price_id: Optional[str] = None
    unit_amount: Optional[int] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    metadata_user_id: Optional[str] = None


class SubscriptionDeleted(_BillingEventBase):
    kind: Literal["subscription_deleted"] = "subscription_deleted"
    subscription_ref: Optional[str] = None


class PaymentSucceeded(_BillingEventBase):
    kind: Literal["payment_succeeded"] = "payment_succeeded"
    subscription_ref: Optional[str] = None
    invoice_ref: Optional[str] = None


class PaymentFailed(_BillingEventBase):
    kind: Literal["payment_failed"] = "payment_failed"
    subscription_ref: Optional[str] = None
    invoice_ref: Optional[str] = None


class UnknownBillingEvent(_BillingEventBase):
    kind: Literal["unknown"] = "unknown"
    event_type: str


BillingEvent = Annotated[
    Union[
        CheckoutCompleted,
        SubscriptionChanged,
        SubscriptionDeleted,
        PaymentSucceeded,
        PaymentFailed,
        UnknownBillingEvent,
    ],
    Field(discriminator="kind"),
]


class BillingEventOutcome(str, Enum):
    """How the processor disposed of an event."""

    APPLIED = "applied"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    DROPPED = "dropped"
    FAILED = "failed"


class BillingEventResult(BaseModel):
    """Per-event result of batch processing."""

    event_id: Optional[str] = None
    kind: BillingEventKind
    outcome: BillingEventOutcome
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class BillingAuditEventType(str, Enum):
    """Audit event categories emitted by the billing subsystem."""

    CHECKOUT_COMPLETED = "checkout_completed"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    USAGE_RESET = "usage_reset"
    EVENT_DROPPED = "event_dropped"


class BillingAuditEvent(BaseModel):
    """Structured audit event for analytics and notifications."""

    event_type: BillingAuditEventType
    user_id: Optional[str] = None
    subscription_ref: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)
