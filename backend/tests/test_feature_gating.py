from __future__ import annotations

import pytest
from fastapi import HTTPException

from backend.app.feature_gates import (
    FeatureGateError,
    InvalidFeature,
    QuotaEvaluation,
    QuotaExceeded,
    evaluate_feature_quota,
    usage_percentage,
)
from backend.app.feature_gates.quota import UNLIMITED


def test_quota_allows_until_limit_reached() -> None:
    evaluation = evaluate_feature_quota(used=1, limit=2)

    assert isinstance(evaluation, QuotaEvaluation)
    assert evaluation.allowed is True
    assert evaluation.unlimited is False
    assert evaluation.percentage == 50.0

    exhausted = evaluate_feature_quota(used=2, limit=2)
    assert exhausted.allowed is False
    assert exhausted.percentage == 100.0


def test_unlimited_quota_always_allows_and_reports_zero_percent() -> None:
    evaluation = evaluate_feature_quota(used=10_000, limit=UNLIMITED)

    assert evaluation.allowed is True
    assert evaluation.unlimited is True
    assert evaluation.percentage == 0.0


@pytest.mark.parametrize(
    ("used", "limit", "expected"),
    [(0, 5, 0.0), (1, 3, pytest.approx(33.333, rel=1e-3)), (7, 5, 100.0), (0, 0, 100.0)],
)
def test_usage_percentage_is_capped(used: int, limit: int, expected: float) -> None:
    assert usage_percentage(used, limit) == expected


def test_zero_quota_never_allows() -> None:
    evaluation = evaluate_feature_quota(used=0, limit=0)

    assert evaluation.allowed is False


def test_quota_exceeded_payload_and_http_conversion() -> None:
    error = QuotaExceeded(used=2, limit=2, feature="assessment")

    assert isinstance(error, FeatureGateError)
    assert error.code == "usage_limit_exceeded"
    assert error.payload["currentUsage"] == 2
    assert error.payload["limit"] == 2
    assert error.payload["feature"] == "assessment"

    http_exc = error.to_http_exception()
    assert isinstance(http_exc, HTTPException)
    assert http_exc.status_code == 403
    assert http_exc.detail["error"] == "usage_limit_exceeded"


def test_invalid_feature_maps_to_bad_request() -> None:
    error = InvalidFeature("teleportation")

    assert error.feature == "teleportation"
    assert error.status_code == 400
    assert error.payload == {
        "error": "invalid_feature",
        "message": "Invalid feature type 'teleportation'.",
        "feature": "teleportation",
    }
