from __future__ import annotations

import pytest

from backend.app.billing import PriceTierTable
from backend.app.config import load_entitlements_config, parse_amount_tiers, parse_price_tiers
from backend.app.entitlements import PlanTier


def test_defaults_when_environment_empty() -> None:
    config = load_entitlements_config({})

    assert config.storage_backend == "postgres"
    assert config.db_port == 5432
    assert config.db_connect_timeout == 5
    assert config.webhook_secret is None
    assert config.webhook_tolerance_seconds == 300
    assert config.price_tiers == {}
    assert config.amount_tiers == {999: PlanTier.PRO, 2999: PlanTier.PREMIUM}


def test_connection_kwargs_include_statement_timeout() -> None:
    config = load_entitlements_config(
        {
            "DB_HOST": "db.internal",
            "DB_PORT": "6543",
            "DB_CONNECT_TIMEOUT": "2.5",
            "DB_STATEMENT_TIMEOUT_MS": "1500",
        }
    )

    kwargs = config.connection_kwargs()
    assert kwargs["host"] == "db.internal"
    assert kwargs["port"] == 6543
    assert kwargs["connect_timeout"] == 3
    assert kwargs["options"] == "-c statement_timeout=1500"


def test_statement_timeout_can_be_disabled() -> None:
    config = load_entitlements_config({"DB_STATEMENT_TIMEOUT_MS": "0"})

    assert "options" not in config.connection_kwargs()


def test_rejects_unknown_storage_backend() -> None:
    with pytest.raises(ValueError):
        load_entitlements_config({"ENTITLEMENTS_STORAGE": "redis"})


def test_rejects_negative_connect_timeout() -> None:
    with pytest.raises(ValueError):
        load_entitlements_config({"DB_CONNECT_TIMEOUT": "-1"})


def test_price_tier_parsing() -> None:
    assert parse_price_tiers("price_a:pro, price_b:PREMIUM,") == {
        "price_a": PlanTier.PRO,
        "price_b": PlanTier.PREMIUM,
    }
    assert parse_amount_tiers("1999:pro") == {1999: PlanTier.PRO}
    assert parse_amount_tiers("") == {}

    with pytest.raises(ValueError):
        parse_price_tiers("price_a")
    with pytest.raises(ValueError):
        parse_amount_tiers("999:gold")


def test_price_tier_table_from_config() -> None:
    config = load_entitlements_config(
        {"BILLING_PRICE_TIERS": "price_team:premium", "BILLING_AMOUNT_TIERS": "1999:pro"}
    )
    table = PriceTierTable.from_config(config)

    assert table.resolve(price_id="price_team", unit_amount=1999) == PlanTier.PREMIUM
    assert table.resolve(price_id="price_other", unit_amount=1999) == PlanTier.PRO
    assert table.resolve(unit_amount=999) == PlanTier.FREE
