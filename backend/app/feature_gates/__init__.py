"""Feature gating utilities coordinating quota enforcement."""
from .exceptions import FeatureGateError, InvalidFeature, QuotaExceeded
from .quota import QuotaEvaluation, evaluate_feature_quota, usage_percentage

__all__ = [
    "FeatureGateError",
    "InvalidFeature",
    "QuotaEvaluation",
    "QuotaExceeded",
    "evaluate_feature_quota",
    "usage_percentage",
]
