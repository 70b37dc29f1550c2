from __future__ import annotations

import hashlib
import hmac
import json
import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.app.billing import (
    BillingEventProcessor,
    InMemorySubscriptionRepository,
    InMemoryUserDirectory,
)
from backend.app.config import load_entitlements_config
from backend.app.db import StorageFailure
from backend.app.entitlements import InMemoryUsageRepository, PlanTier, SubscriptionStatus
from backend.app.routes import billing as billing_routes
from backend.app.services import billing as billing_service
from backend.app.services import entitlements as entitlements_service

SECRET = "whsec_test"


class RecordingEventLogger:
    def __init__(self) -> None:
        self.events = []

    def log(self, event) -> None:
        self.events.append(event)


def _sign(payload: bytes, secret: str = SECRET, timestamp: int | None = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def subscriptions() -> InMemorySubscriptionRepository:
    return InMemorySubscriptionRepository()


@pytest.fixture
def client(monkeypatch, subscriptions) -> TestClient:
    config = load_entitlements_config({"ENTITLEMENTS_STORAGE": "memory", "BILLING_WEBHOOK_SECRET": SECRET})
    processor = BillingEventProcessor(
        repository=subscriptions,
        usage=InMemoryUsageRepository(),
        users=InMemoryUserDirectory({"ada@example.com": "user-1"}),
        event_logger=RecordingEventLogger(),
    )
    monkeypatch.setattr(entitlements_service, "get_config", lambda: config)
    monkeypatch.setattr(billing_service, "get_billing_processor", lambda: processor)

    app = FastAPI()
    app.include_router(billing_routes.router)
    return TestClient(app)


def _post(client: TestClient, envelope: dict, *, signature: str | None = None):
    payload = json.dumps(envelope).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = signature if signature is not None else _sign(payload)
    return client.post("/api/webhooks/billing", content=payload, headers=headers)


def test_verified_checkout_and_subscription_events_are_applied(client, subscriptions) -> None:
    checkout = _post(
        client,
        {
            "id": "evt_checkout",
            "type": "checkout.session.completed",
            "data": {"object": {"customer": "cus_1", "subscription": "sub_1", "customer_email": "ada@example.com"}},
        },
    )
    assert checkout.status_code == 200
    assert checkout.json() == {
        "received": True,
        "eventId": "evt_checkout",
        "kind": "checkout_completed",
        "outcome": "applied",
    }

    updated = _post(
        client,
        {
            "id": "evt_update",
            "type": "customer.subscription.updated",
            "data": {
                "object": {
                    "id": "sub_1",
                    "status": "active",
                    "items": {"data": [{"price": {"id": "price_x", "unit_amount": 2999}}]},
                }
            },
        },
    )
    assert updated.json()["outcome"] == "applied"

    stored = subscriptions.get_subscription_for_user("user-1")
    assert stored.status == SubscriptionStatus.ACTIVE
    assert stored.plan_tier == PlanTier.PREMIUM


def test_redelivered_event_is_acknowledged_as_duplicate(client) -> None:
    envelope = {"id": "evt_dup", "type": "customer.created", "data": {"object": {}}}

    assert _post(client, envelope).json()["outcome"] == "ignored"
    assert _post(client, envelope).json()["outcome"] == "duplicate"


def test_unresolved_subject_is_acknowledged_as_dropped(client) -> None:
    response = _post(
        client,
        {"id": "evt_lost", "type": "invoice.payment_failed", "data": {"object": {"id": "in_1", "subscription": "sub_missing"}}},
    )

    assert response.status_code == 200
    assert response.json()["outcome"] == "dropped"


def test_invalid_signature_is_rejected(client, subscriptions) -> None:
    envelope = {"id": "evt_forged", "type": "customer.subscription.deleted", "data": {"object": {"id": "sub_1"}}}
    payload = json.dumps(envelope).encode("utf-8")

    response = _post(client, envelope, signature=_sign(payload, secret="whsec_wrong"))

    assert response.status_code == 400
    assert subscriptions.has_webhook_event("evt_forged") is False


def test_missing_signature_is_rejected(client) -> None:
    response = client.post(
        "/api/webhooks/billing",
        content=b'{"id": "evt_1", "type": "customer.created"}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400


def test_unsupported_status_is_rejected(client) -> None:
    response = _post(
        client,
        {"id": "evt_bad", "type": "customer.subscription.updated", "data": {"object": {"id": "sub_1", "status": "frozen"}}},
    )

    assert response.status_code == 400


def test_storage_failure_requests_redelivery(client, monkeypatch) -> None:
    class BrokenProcessor:
        def handle_event(self, event):
            raise StorageFailure("webhooks.has_event")

    monkeypatch.setattr(billing_service, "get_billing_processor", lambda: BrokenProcessor())

    response = _post(client, {"id": "evt_500", "type": "customer.created", "data": {"object": {}}})

    assert response.status_code == 500


def test_verify_webhook_payload_requires_configured_secret() -> None:
    with pytest.raises(billing_service.WebhookVerificationError):
        billing_service.verify_webhook_payload(b"{}", "t=1,v1=abc", None)


def test_verify_webhook_payload_rejects_stale_timestamp() -> None:
    payload = b'{"id": "evt_old"}'
    header = _sign(payload, timestamp=int(time.time()) - 3600)

    with pytest.raises(billing_service.WebhookVerificationError):
        billing_service.verify_webhook_payload(payload, header, SECRET, tolerance=300)


def test_verify_webhook_payload_returns_envelope() -> None:
    payload = b'{"id": "evt_ok", "type": "customer.created"}'

    envelope = billing_service.verify_webhook_payload(payload, _sign(payload), SECRET)

    assert envelope == {"id": "evt_ok", "type": "customer.created"}
