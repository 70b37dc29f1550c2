"""Mapping from billing provider prices to plan tiers."""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from ..config import DEFAULT_AMOUNT_TIERS, EntitlementsConfig
from ..entitlements.models import PlanTier


@dataclass(frozen=True)
class PriceTierTable:
    """Resolves the plan tier purchased by a subscription line item.

    Stable price identifiers take precedence; the exact unit amount (in minor
    currency units) is consulted only when the price id is not configured.
    Anything unmatched resolves to the free tier.
    """

    by_price_id: Mapping[str, PlanTier] = field(default_factory=dict)
    by_amount: Mapping[int, PlanTier] = field(default_factory=lambda: dict(DEFAULT_AMOUNT_TIERS))

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_price_id", MappingProxyType(dict(self.by_price_id)))
        object.__setattr__(self, "by_amount", MappingProxyType(dict(self.by_amount)))

    @classmethod
    def from_config(cls, config: EntitlementsConfig) -> "PriceTierTable":
        return cls(by_price_id=config.price_tiers, by_amount=config.amount_tiers)

    def resolve(self, *, price_id: Optional[str] = None, unit_amount: Optional[int] = None) -> PlanTier:
        if price_id and price_id in self.by_price_id:
            return self.by_price_id[price_id]
        if unit_amount is not None and unit_amount in self.by_amount:
            return self.by_amount[unit_amount]
        return PlanTier.FREE
