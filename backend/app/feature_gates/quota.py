"""Feature quota evaluation utilities for feature gating."""
from __future__ import annotations

from dataclasses import dataclass

UNLIMITED = -1


@dataclass(frozen=True)
class QuotaEvaluation:
    """Represents the outcome of a feature quota check."""

    used: int
    limit: int
    unlimited: bool
    allowed: bool
    percentage: float


def usage_percentage(used: int, limit: int) -> float:
    """Share of the quota consumed, capped at 100 and zero for unlimited plans."""

    if limit == UNLIMITED:
        return 0.0
    if limit <= 0:
        return 100.0
    return min(100.0, (used / limit) * 100)


def evaluate_feature_quota(*, used: int, limit: int) -> QuotaEvaluation:
    """Determine whether one more unit of a feature may be consumed."""

    unlimited = limit == UNLIMITED
    return QuotaEvaluation(
        used=used,
        limit=limit,
        unlimited=unlimited,
        allowed=unlimited or used < limit,
        percentage=usage_percentage(used, limit),
    )
