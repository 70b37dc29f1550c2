"""API routes for metered feature usage."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ..feature_gates import FeatureGateError
from ..schemas.usage import CanUseResponse, IncrementResponse, ResetResponse, UsageStatsResponse
from ..services import entitlements as entitlements_service
from .dependencies import current_user_id, get_current_user

router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.get("/stats", response_model=UsageStatsResponse)
def get_usage_stats(*, current_user: Any = Depends(get_current_user)) -> UsageStatsResponse:
    service = entitlements_service.get_entitlement_service()
    snapshot = service.get_usage_snapshot(current_user_id(current_user))
    return UsageStatsResponse.from_snapshot(snapshot)


@router.get("/can-use/{feature}", response_model=CanUseResponse)
def can_use_feature(
    feature: str,
    *,
    current_user: Any = Depends(get_current_user),
) -> CanUseResponse:
    service = entitlements_service.get_entitlement_service()
    try:
        result = service.can_use(current_user_id(current_user), feature)
    except FeatureGateError as exc:
        raise exc.to_http_exception() from exc
    return CanUseResponse.from_result(result)


@router.post("/increment/{feature}", response_model=IncrementResponse)
def increment_feature_usage(
    feature: str,
    *,
    current_user: Any = Depends(get_current_user),
) -> IncrementResponse:
    service = entitlements_service.get_entitlement_service()
    user_id = current_user_id(current_user)
    try:
        result = service.increment_usage(user_id, feature)
    except FeatureGateError as exc:
        raise exc.to_http_exception() from exc
    return IncrementResponse.from_result(result)


@router.post("/reset", response_model=ResetResponse)
def reset_usage(*, current_user: Any = Depends(get_current_user)) -> ResetResponse:
    service = entitlements_service.get_entitlement_service()
    counters = service.reset_user_usage(current_user_id(current_user))
    return ResetResponse(counters_reset=counters)
