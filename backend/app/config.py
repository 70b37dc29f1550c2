"""Configuration helpers for the entitlement engine."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .entitlements.models import PlanTier

STORAGE_BACKENDS = frozenset({"postgres", "memory"})

DEFAULT_AMOUNT_TIERS: Dict[int, PlanTier] = {
    999: PlanTier.PRO,
    2999: PlanTier.PREMIUM,
}


@dataclass(frozen=True)
class EntitlementsConfig:
    """Runtime configuration for stores, webhooks, and price mapping."""

    storage_backend: str
    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    db_connect_timeout: int
    db_statement_timeout_ms: int
    webhook_secret: Optional[str]
    webhook_tolerance_seconds: int
    price_tiers: Mapping[str, PlanTier] = field(default_factory=dict)
    amount_tiers: Mapping[int, PlanTier] = field(default_factory=lambda: dict(DEFAULT_AMOUNT_TIERS))

    def connection_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments accepted by :func:`psycopg2.connect`."""

        kwargs: Dict[str, Any] = {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
            "connect_timeout": self.db_connect_timeout,
        }
        if self.db_statement_timeout_ms > 0:
            kwargs["options"] = f"-c statement_timeout={self.db_statement_timeout_ms}"
        return kwargs


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _parse_connect_timeout(raw_value: Optional[str]) -> int:
    if raw_value is None or raw_value == "":
        return 5
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


def _parse_tier(value: str, *, source: str) -> PlanTier:
    try:
        return PlanTier(value.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unknown plan tier {value!r} in {source}") from exc


def parse_price_tiers(raw: Optional[str]) -> Dict[str, PlanTier]:
    """Parse ``price_abc:pro,price_def:premium`` into a lookup table."""

    table: Dict[str, PlanTier] = {}
    if not raw:
        return table
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        price_id, sep, tier = entry.partition(":")
        if not sep or not price_id.strip():
            raise ValueError(f"Malformed BILLING_PRICE_TIERS entry {entry!r}")
        table[price_id.strip()] = _parse_tier(tier, source="BILLING_PRICE_TIERS")
    return table


def parse_amount_tiers(raw: Optional[str]) -> Dict[int, PlanTier]:
    """Parse ``999:pro,2999:premium`` into a lookup table keyed by minor units."""

    if raw is None:
        return dict(DEFAULT_AMOUNT_TIERS)
    table: Dict[int, PlanTier] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        amount, sep, tier = entry.partition(":")
        if not sep:
            raise ValueError(f"Malformed BILLING_AMOUNT_TIERS entry {entry!r}")
        table[_to_int(amount.strip(), default=0)] = _parse_tier(tier, source="BILLING_AMOUNT_TIERS")
    return table


def load_entitlements_config(env: Optional[Mapping[str, str]] = None) -> EntitlementsConfig:
    """Load :class:`EntitlementsConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    storage_backend = (env_mapping.get("ENTITLEMENTS_STORAGE") or "postgres").strip().lower()
    if storage_backend not in STORAGE_BACKENDS:
        raise ValueError(
            f"ENTITLEMENTS_STORAGE must be one of {sorted(STORAGE_BACKENDS)}, got {storage_backend!r}"
        )

    return EntitlementsConfig(
        storage_backend=storage_backend,
        db_host=env_mapping.get("DB_HOST", "127.0.0.1"),
        db_port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        db_name=env_mapping.get("DB_NAME", "mindquest"),
        db_user=env_mapping.get("DB_USER", "mindquest"),
        db_password=env_mapping.get("DB_PASSWORD", "mindquest"),
        db_connect_timeout=_parse_connect_timeout(env_mapping.get("DB_CONNECT_TIMEOUT")),
        db_statement_timeout_ms=max(0, _to_int(env_mapping.get("DB_STATEMENT_TIMEOUT_MS"), default=5000)),
        webhook_secret=env_mapping.get("BILLING_WEBHOOK_SECRET") or None,
        webhook_tolerance_seconds=max(0, _to_int(env_mapping.get("BILLING_WEBHOOK_TOLERANCE"), default=300)),
        price_tiers=parse_price_tiers(env_mapping.get("BILLING_PRICE_TIERS")),
        amount_tiers=parse_amount_tiers(env_mapping.get("BILLING_AMOUNT_TIERS")),
    )


__all__ = [
    "DEFAULT_AMOUNT_TIERS",
    "EntitlementsConfig",
    "load_entitlements_config",
    "parse_amount_tiers",
    "parse_price_tiers",
]
