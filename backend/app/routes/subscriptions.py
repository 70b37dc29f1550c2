"""API routes exposing a user's subscription state."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ..schemas.billing import SubscriptionStatusResponse
from ..services import entitlements as entitlements_service
from .dependencies import current_user_id, get_current_user

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(*, current_user: Any = Depends(get_current_user)) -> SubscriptionStatusResponse:
    service = entitlements_service.get_entitlement_service()
    subscription = service.get_subscription_status(current_user_id(current_user))
    return SubscriptionStatusResponse.from_subscription(subscription)
