"""Translation of verified billing provider payloads into billing events."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from pydantic import TypeAdapter

from ..entitlements.models import SubscriptionStatus
from .models import BillingEvent, BillingEventKind


PROVIDER_EVENT_KINDS: Dict[str, BillingEventKind] = {
    "checkout.session.completed": BillingEventKind.CHECKOUT_COMPLETED,
    "customer.subscription.created": BillingEventKind.SUBSCRIPTION_CHANGED,
    "customer.subscription.updated": BillingEventKind.SUBSCRIPTION_CHANGED,
    "customer.subscription.deleted": BillingEventKind.SUBSCRIPTION_DELETED,
    "invoice.payment_succeeded": BillingEventKind.PAYMENT_SUCCEEDED,
    "invoice.payment_failed": BillingEventKind.PAYMENT_FAILED,
}

# Provider statuses outside our lifecycle collapse onto the nearest state.
_PROVIDER_STATUS_ALIASES: Dict[str, SubscriptionStatus] = {
    "incomplete": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete_expired": SubscriptionStatus.CANCELED,
    "paused": SubscriptionStatus.CANCELED,
}

_EVENT_ADAPTER: TypeAdapter[BillingEvent] = TypeAdapter(BillingEvent)


def parse_billing_event(data: Mapping[str, Any]) -> BillingEvent:
    """Validate an already-normalized event dict carrying a ``kind`` field."""

    return _EVENT_ADAPTER.validate_python(dict(data))


def parse_provider_event(payload: Mapping[str, Any]) -> BillingEvent:
    """Build a billing event from a provider envelope ``{id, type, data: {object}}``."""

    event_type = str(payload.get("type") or "")
    event_id = payload.get("id")
    data = payload.get("data")
    obj = data.get("object") if isinstance(data, Mapping) else None
    if not isinstance(obj, Mapping):
        obj = {}

    kind = PROVIDER_EVENT_KINDS.get(event_type, BillingEventKind.UNKNOWN)
    fields: Dict[str, Any] = {"kind": kind.value, "event_id": str(event_id) if event_id else None}
    received_at = _parse_optional_datetime(payload.get("created"))
    if received_at is not None:
        fields["received_at"] = received_at

    if kind == BillingEventKind.CHECKOUT_COMPLETED:
        details = obj.get("customer_details")
        email = details.get("email") if isinstance(details, Mapping) else None
        fields.update(
            customer_email=email or obj.get("customer_email"),
            customer_ref=_optional_str(obj.get("customer")),
            subscription_ref=_optional_str(obj.get("subscription")),
        )
    elif kind == BillingEventKind.SUBSCRIPTION_CHANGED:
        item = _first_subscription_item(obj)
        price = item.get("price") if isinstance(item.get("price"), Mapping) else {}
        metadata = obj.get("metadata") if isinstance(obj.get("metadata"), Mapping) else {}
        fields.update(
            subscription_ref=_optional_str(obj.get("id")),
            customer_ref=_optional_str(obj.get("customer")),
            status=normalize_provider_status(obj.get("status")),
            price_id=_optional_str(price.get("id")),
            unit_amount=price.get("unit_amount"),
            current_period_start=_parse_optional_datetime(
                obj.get("current_period_start") or item.get("current_period_start")
            ),
            current_period_end=_parse_optional_datetime(
                obj.get("current_period_end") or item.get("current_period_end")
            ),
            metadata_user_id=_optional_str(metadata.get("userId") or metadata.get("user_id")),
        )
    elif kind == BillingEventKind.SUBSCRIPTION_DELETED:
        fields["subscription_ref"] = _optional_str(obj.get("id"))
    elif kind in {BillingEventKind.PAYMENT_SUCCEEDED, BillingEventKind.PAYMENT_FAILED}:
        fields.update(
            subscription_ref=_invoice_subscription_ref(obj),
            invoice_ref=_optional_str(obj.get("id")),
        )
    else:
        fields["event_type"] = event_type or "unspecified"

    return parse_billing_event(fields)


def normalize_provider_status(value: object) -> SubscriptionStatus:
    """Map a provider subscription status onto :class:`SubscriptionStatus`."""

    raw = str(value or "").strip().lower()
    try:
        return SubscriptionStatus(raw)
    except ValueError:
        pass
    alias = _PROVIDER_STATUS_ALIASES.get(raw)
    if alias is not None:
        return alias
    raise ValueError(f"Unsupported subscription status {value!r}")


def _first_subscription_item(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    items = obj.get("items")
    entries = items.get("data") if isinstance(items, Mapping) else None
    if isinstance(entries, list) and entries and isinstance(entries[0], Mapping):
        return entries[0]
    return {}


def _invoice_subscription_ref(obj: Mapping[str, Any]) -> Optional[str]:
    subscription = obj.get("subscription")
    if isinstance(subscription, Mapping):
        subscription = subscription.get("id")
    if subscription:
        return str(subscription)
    parent = obj.get("parent")
    if isinstance(parent, Mapping):
        details = parent.get("subscription_details")
        if isinstance(details, Mapping) and details.get("subscription"):
            return str(details["subscription"])
    return None


def _optional_str(value: object) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _parse_optional_datetime(value: object) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported datetime value {value!r}")


__all__ = [
    "PROVIDER_EVENT_KINDS",
    "normalize_provider_status",
    "parse_billing_event",
    "parse_provider_event",
]
