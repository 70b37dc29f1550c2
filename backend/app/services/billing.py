"""Application wiring for the billing event processor."""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Dict, Optional

import stripe

from ..billing import (
    BillingAuditEvent,
    BillingEventLogger,
    BillingEventProcessor,
    PriceTierTable,
)
from .entitlements import get_config, get_stores

logger = logging.getLogger("billing")


class WebhookVerificationError(ValueError):
    """Raised when a webhook payload fails signature verification."""


class LoggingBillingEventLogger(BillingEventLogger):
    """Simple event logger forwarding billing audit events to logging."""

    def log(self, event: BillingAuditEvent) -> None:
        logger.info(
            "Billing event %s user=%s subscription=%s metadata=%s",
            event.event_type.value,
            event.user_id,
            event.subscription_ref,
            event.metadata,
        )


def verify_webhook_payload(
    payload: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
    *,
    tolerance: int = 300,
) -> Dict[str, Any]:
    """Check the provider signature and return the decoded event envelope."""

    if not secret:
        raise WebhookVerificationError("Webhook secret is not configured")
    if not signature_header:
        raise WebhookVerificationError("Missing webhook signature header")
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), signature_header, secret, tolerance
        )
    except stripe.SignatureVerificationError as exc:
        raise WebhookVerificationError(str(exc)) from exc

    try:
        envelope = json.loads(payload)
    except ValueError as exc:
        raise WebhookVerificationError("Webhook payload is not valid JSON") from exc
    if not isinstance(envelope, dict):
        raise WebhookVerificationError("Webhook payload must be a JSON object")
    return envelope


@lru_cache(maxsize=1)
def get_billing_processor() -> BillingEventProcessor:
    stores = get_stores()
    return BillingEventProcessor(
        repository=stores.subscriptions,
        usage=stores.usage,
        users=stores.users,
        event_logger=LoggingBillingEventLogger(),
        price_tiers=PriceTierTable.from_config(get_config()),
    )


__all__ = [
    "LoggingBillingEventLogger",
    "WebhookVerificationError",
    "get_billing_processor",
    "verify_webhook_payload",
]
