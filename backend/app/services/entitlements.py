"""Application wiring for stores and the entitlement service."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from ..billing.memory import InMemorySubscriptionRepository, InMemoryUserDirectory
from ..billing.repository import PostgresSubscriptionRepository, PostgresUserDirectory
from ..billing.service import SubscriptionRepository, UserDirectory
from ..config import EntitlementsConfig, load_entitlements_config
from ..entitlements import (
    DEFAULT_PLAN_CATALOG,
    EntitlementService,
    InMemoryUsageRepository,
    PostgresUsageRepository,
    UsageRepository,
)

logger = logging.getLogger("entitlements")


@dataclass(frozen=True)
class Stores:
    """Store implementations shared by the evaluator and the billing processor."""

    subscriptions: SubscriptionRepository
    usage: UsageRepository
    users: UserDirectory


def build_stores(config: EntitlementsConfig) -> Stores:
    if config.storage_backend == "memory":
        logger.warning("Using in-memory entitlement stores; state is lost on restart")
        return Stores(
            subscriptions=InMemorySubscriptionRepository(),
            usage=InMemoryUsageRepository(),
            users=InMemoryUserDirectory(),
        )
    return Stores(
        subscriptions=PostgresSubscriptionRepository(),
        usage=PostgresUsageRepository(),
        users=PostgresUserDirectory(),
    )


@lru_cache(maxsize=1)
def get_config() -> EntitlementsConfig:
    return load_entitlements_config()


@lru_cache(maxsize=1)
def get_stores() -> Stores:
    return build_stores(get_config())


@lru_cache(maxsize=1)
def get_entitlement_service() -> EntitlementService:
    stores = get_stores()
    return EntitlementService(
        usage_repository=stores.usage,
        subscription_reader=stores.subscriptions,
        catalog=DEFAULT_PLAN_CATALOG,
    )


__all__ = ["Stores", "build_stores", "get_config", "get_entitlement_service", "get_stores"]
