"""Custom exceptions used for feature gating enforcement."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class FeatureGateError(Exception):
    """Represents an actionable gating failure surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_403_FORBIDDEN
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class InvalidFeature(FeatureGateError):
    """Raised when a feature key is not part of the plan catalog."""

    def __init__(self, feature: object) -> None:
        self.feature = str(feature)
        super().__init__(
            code="invalid_feature",
            message=f"Invalid feature type '{self.feature}'.",
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"feature": self.feature},
        )


class QuotaExceeded(FeatureGateError):
    """Raised when a feature has no remaining quota under the user's plan."""

    def __init__(self, *, used: int, limit: int, feature: Optional[str] = None) -> None:
        self.used = used
        self.limit = limit
        self.feature = feature
        detail: Dict[str, Any] = {"currentUsage": used, "limit": limit}
        if feature is not None:
            detail["feature"] = feature
        super().__init__(
            code="usage_limit_exceeded",
            message="Usage limit exceeded.",
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )
