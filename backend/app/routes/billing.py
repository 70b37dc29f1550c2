"""API route receiving billing provider webhooks."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from ..billing import BillingEventKind, parse_provider_event
from ..db.connection import StorageFailure
from ..schemas.billing import WebhookAckResponse
from ..services import billing as billing_service
from ..services import entitlements as entitlements_service

logger = logging.getLogger("billing")

router = APIRouter(prefix="/api/webhooks", tags=["billing"])


@router.post("/billing", response_model=WebhookAckResponse)
async def receive_billing_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> WebhookAckResponse:
    payload = await request.body()
    config = entitlements_service.get_config()
    try:
        envelope = billing_service.verify_webhook_payload(
            payload,
            stripe_signature,
            config.webhook_secret,
            tolerance=config.webhook_tolerance_seconds,
        )
        event = parse_provider_event(envelope)
    except ValueError as exc:
        logger.warning("Rejected billing webhook: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    processor = billing_service.get_billing_processor()
    try:
        outcome = await run_in_threadpool(processor.handle_event, event)
    except StorageFailure as exc:
        logger.error("Billing webhook %s could not be stored: %s", event.event_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Billing event could not be processed",
        ) from exc

    return WebhookAckResponse(event_id=event.event_id, kind=BillingEventKind(event.kind), outcome=outcome)
