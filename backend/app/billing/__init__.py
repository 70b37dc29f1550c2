"""Billing domain package turning provider events into subscription state."""

from .events import parse_billing_event, parse_provider_event
from .exceptions import UnresolvedBillingSubject
from .memory import InMemorySubscriptionRepository, InMemoryUserDirectory
from .models import (
    BillingAuditEvent,
    BillingAuditEventType,
    BillingEvent,
    BillingEventKind,
    BillingEventOutcome,
    BillingEventResult,
    CheckoutCompleted,
    PaymentFailed,
    PaymentSucceeded,
    SubscriptionChanged,
    SubscriptionDeleted,
    UnknownBillingEvent,
)
from .pricing import PriceTierTable
from .repository import PostgresSubscriptionRepository, PostgresUserDirectory
from .service import (
    BillingEventLogger,
    BillingEventProcessor,
    SubscriptionRepository,
    UsageResetter,
    UserDirectory,
)

__all__ = [
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingEvent",
    "BillingEventKind",
    "BillingEventLogger",
    "BillingEventOutcome",
    "BillingEventProcessor",
    "BillingEventResult",
    "CheckoutCompleted",
    "InMemorySubscriptionRepository",
    "InMemoryUserDirectory",
    "PaymentFailed",
    "PaymentSucceeded",
    "PostgresSubscriptionRepository",
    "PostgresUserDirectory",
    "PriceTierTable",
    "SubscriptionChanged",
    "SubscriptionDeleted",
    "SubscriptionRepository",
    "UnknownBillingEvent",
    "UnresolvedBillingSubject",
    "UsageResetter",
    "UserDirectory",
    "parse_billing_event",
    "parse_provider_event",
]
