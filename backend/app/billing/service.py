"""Applies billing provider events to subscription and usage state."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Protocol

from ..db.connection import StorageFailure
from ..entitlements.models import (
    FREE_TIER_STATUSES,
    PaymentStatus,
    PlanTier,
    Subscription,
    SubscriptionStatus,
    SubscriptionUpdate,
)
from .exceptions import UnresolvedBillingSubject
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
)
from .pricing import PriceTierTable

logger = logging.getLogger("billing")


class SubscriptionRepository(Protocol):
    """Persistence operations required by the billing event processor."""

    def get_subscription_for_user(self, user_id: str) -> Optional[Subscription]:
        ...

    def get_subscription_by_ref(self, subscription_ref: str) -> Optional[Subscription]:
        ...

    def upsert_for_user(self, user_id: str, update: SubscriptionUpdate) -> Subscription:
        ...

    def update_by_ref(self, subscription_ref: str, update: SubscriptionUpdate) -> Optional[Subscription]:
        ...

    def has_webhook_event(self, event_id: str) -> bool:
        ...

    def record_webhook_event(self, event_id: str, event_type: str) -> bool:
        ...


class UsageResetter(Protocol):
    """Usage store operation triggered by a successful payment."""

    def reset_user(self, user_id: str) -> int:
        ...


class UserDirectory(Protocol):
    """Identity provider lookup used to attribute checkouts to users."""

    def find_user_id_by_email(self, email: str) -> Optional[str]:
        ...


class BillingEventLogger(Protocol):
    """Captures structured billing audit events."""

    def log(self, event: BillingAuditEvent) -> None:
        ...


@dataclass
class BillingEventProcessor:
    """Idempotent, last-write-wins state transitions driven by billing events.

    Every handler writes absolute field values, so re-delivering an event
    reproduces the state a single delivery produced. Events carry no sequence
    number: an older event delivered after a newer one overwrites it.
    """

    repository: SubscriptionRepository
    usage: UsageResetter
    users: UserDirectory
    event_logger: BillingEventLogger
    price_tiers: PriceTierTable = field(default_factory=PriceTierTable)
    clock: Optional[Callable[[], datetime]] = None

    def _now(self) -> datetime:
        return self.clock() if self.clock else datetime.now(timezone.utc)

    def handle_event(self, event: BillingEvent) -> BillingEventOutcome:
        """Apply one event. ``StorageFailure`` propagates so delivery can be retried."""

        if event.event_id and self.repository.has_webhook_event(event.event_id):
            logger.info("Skipping duplicate billing event %s (%s)", event.event_id, event.kind)
            return BillingEventOutcome.DUPLICATE

        try:
            outcome = self._dispatch(event)
        except UnresolvedBillingSubject as exc:
            logger.warning("Dropping billing event %s (%s): %s", event.event_id, event.kind, exc)
            self.event_logger.log(
                BillingAuditEvent(
                    event_type=BillingAuditEventType.EVENT_DROPPED,
                    subscription_ref=exc.reference,
                    metadata={
                        "kind": event.kind,
                        "reason": str(exc),
                        "received_at": event.received_at.isoformat(),
                    },
                )
            )
            outcome = BillingEventOutcome.DROPPED

        if event.event_id:
            self.repository.record_webhook_event(event.event_id, event.kind)
        return outcome

    def process_events(self, events: Iterable[BillingEvent]) -> List[BillingEventResult]:
        """Handle events independently; a failing handler only fails its own event."""

        results: List[BillingEventResult] = []
        for event in events:
            try:
                outcome = self.handle_event(event)
            except Exception as exc:
                if isinstance(exc, StorageFailure):
                    logger.error("Billing event %s (%s) failed: %s", event.event_id, event.kind, exc)
                else:
                    logger.exception("Billing event %s (%s) raised", event.event_id, event.kind)
                results.append(
                    BillingEventResult(
                        event_id=event.event_id,
                        kind=BillingEventKind(event.kind),
                        outcome=BillingEventOutcome.FAILED,
                        error=str(exc),
                    )
                )
                continue
            results.append(
                BillingEventResult(event_id=event.event_id, kind=BillingEventKind(event.kind), outcome=outcome)
            )
        return results

    def _dispatch(self, event: BillingEvent) -> BillingEventOutcome:
        if isinstance(event, CheckoutCompleted):
            self._apply_checkout_completed(event)
        elif isinstance(event, SubscriptionChanged):
            self._apply_subscription_changed(event)
        elif isinstance(event, SubscriptionDeleted):
            self._apply_subscription_deleted(event)
        elif isinstance(event, PaymentSucceeded):
            self._apply_payment_succeeded(event)
        elif isinstance(event, PaymentFailed):
            self._apply_payment_failed(event)
        else:
            logger.info("Unhandled billing event type: %s", getattr(event, "event_type", event.kind))
            return BillingEventOutcome.IGNORED
        return BillingEventOutcome.APPLIED

    def _apply_checkout_completed(self, event: CheckoutCompleted) -> Subscription:
        if not event.customer_email:
            raise UnresolvedBillingSubject(
                "No customer email found in checkout session", reference=event.subscription_ref
            )
        user_id = self.users.find_user_id_by_email(event.customer_email)
        if user_id is None:
            raise UnresolvedBillingSubject(
                f"User not found for checkout email {event.customer_email}",
                reference=event.subscription_ref,
            )

        subscription = self.repository.upsert_for_user(
            user_id,
            SubscriptionUpdate(
                billing_customer_ref=event.customer_ref,
                billing_subscription_ref=event.subscription_ref,
                status=SubscriptionStatus.ACTIVE,
            ),
        )
        self._audit(BillingAuditEventType.CHECKOUT_COMPLETED, subscription)
        return subscription

    def _apply_subscription_changed(self, event: SubscriptionChanged) -> Subscription:
        ref = self._require_ref(event.subscription_ref, event.kind)
        plan_tier = self.price_tiers.resolve(price_id=event.price_id, unit_amount=event.unit_amount)
        if event.status in FREE_TIER_STATUSES:
            plan_tier = PlanTier.FREE

        changes = {
            "status": event.status,
            "plan_tier": plan_tier,
            "current_period_start": event.current_period_start,
            "current_period_end": event.current_period_end,
        }
        subscription = self.repository.update_by_ref(ref, SubscriptionUpdate(**changes))
        if subscription is None:
            if not event.metadata_user_id:
                raise UnresolvedBillingSubject(f"Unknown billing subscription {ref}", reference=ref)
            changes["billing_subscription_ref"] = ref
            if event.customer_ref:
                changes["billing_customer_ref"] = event.customer_ref
            subscription = self.repository.upsert_for_user(event.metadata_user_id, SubscriptionUpdate(**changes))

        audit_type = (
            BillingAuditEventType.SUBSCRIPTION_CANCELED
            if subscription.status == SubscriptionStatus.CANCELED
            else BillingAuditEventType.SUBSCRIPTION_UPDATED
        )
        self._audit(audit_type, subscription, plan_tier=subscription.plan_tier.value)
        return subscription

    def _apply_subscription_deleted(self, event: SubscriptionDeleted) -> Subscription:
        ref = self._require_ref(event.subscription_ref, event.kind)
        subscription = self.repository.update_by_ref(
            ref,
            SubscriptionUpdate(status=SubscriptionStatus.CANCELED, plan_tier=PlanTier.FREE),
        )
        if subscription is None:
            raise UnresolvedBillingSubject(f"Unknown billing subscription {ref}", reference=ref)
        self._audit(BillingAuditEventType.SUBSCRIPTION_CANCELED, subscription)
        return subscription

    def _apply_payment_succeeded(self, event: PaymentSucceeded) -> Subscription:
        ref = self._require_ref(event.subscription_ref, event.kind)
        subscription = self.repository.update_by_ref(
            ref,
            SubscriptionUpdate(payment_status=PaymentStatus.ACTIVE, last_payment_at=self._now()),
        )
        if subscription is None:
            raise UnresolvedBillingSubject(f"Unknown billing subscription {ref}", reference=ref)
        self._audit(BillingAuditEventType.PAYMENT_SUCCEEDED, subscription, invoice_ref=event.invoice_ref)

        reset = self.usage.reset_user(subscription.user_id)
        self._audit(BillingAuditEventType.USAGE_RESET, subscription, counters=str(reset))
        return subscription

    def _apply_payment_failed(self, event: PaymentFailed) -> Subscription:
        ref = self._require_ref(event.subscription_ref, event.kind)
        subscription = self.repository.update_by_ref(
            ref, SubscriptionUpdate(payment_status=PaymentStatus.FAILED)
        )
        if subscription is None:
            raise UnresolvedBillingSubject(f"Unknown billing subscription {ref}", reference=ref)
        self._audit(BillingAuditEventType.PAYMENT_FAILED, subscription, invoice_ref=event.invoice_ref)
        return subscription

    def _require_ref(self, subscription_ref: Optional[str], kind: str) -> str:
        if not subscription_ref:
            raise UnresolvedBillingSubject(f"{kind} event carries no subscription reference")
        return subscription_ref

    def _audit(
        self,
        event_type: BillingAuditEventType,
        subscription: Subscription,
        **metadata: Optional[str],
    ) -> None:
        self.event_logger.log(
            BillingAuditEvent(
                event_type=event_type,
                user_id=subscription.user_id,
                subscription_ref=subscription.billing_subscription_ref,
                metadata={key: value for key, value in metadata.items() if value is not None},
            )
        )


__all__ = [
    "BillingEventLogger",
    "BillingEventProcessor",
    "SubscriptionRepository",
    "UsageResetter",
    "UserDirectory",
]
