"""
Tests for configuration defaults and environment overrides (deal_tracker/config.py).
"""

from __future__ import annotations

from decimal import Decimal

import pydantic
import pytest

from deal_tracker.config import DealType, Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
    config = Settings(_env_file=None)

    assert config.PRICE_FLOOR_EUR == Decimal("10")
    assert config.TREND_DROP_PCT == Decimal("0.15")
    assert config.WATCHLIST_ALERT_PCT == Decimal("0.05")
    assert config.TREND_WINDOW_DAYS == 30
    assert config.PRICE_RETENTION_DAYS == 180
    assert config.IDENTIFIERS_MAX_AGE_DAYS == 30
    assert config.PIPELINE_MAX_RETRIES == 3
    assert config.PIPELINE_RETRY_DELAY_SECONDS == 900
    assert config.FETCH_BASE_BACKOFF_SECONDS == 2.0
    assert config.SLACK_MAX_DEALS_PER_MESSAGE == 48
    assert config.SLACK_WEBHOOK_URL == ""
    assert config.TARGET_FORMAT == "commander"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PRICE_FLOOR_EUR", "25.5")
    monkeypatch.setenv("PIPELINE_MAX_RETRIES", "5")
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.test/x")

    config = Settings(_env_file=None)

    assert config.PRICE_FLOOR_EUR == Decimal("25.5")
    assert config.PIPELINE_MAX_RETRIES == 5
    assert config.SLACK_WEBHOOK_URL == "https://hooks.slack.test/x"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("SLACK_MAX_DEALS_PER_MESSAGE", "49"),
        ("TREND_DROP_PCT", "1.5"),
        ("PIPELINE_MAX_RETRIES", "0"),
    ],
)
def test_out_of_range_values_rejected(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(pydantic.ValidationError):
        Settings(_env_file=None)


def test_deal_type_values() -> None:
    assert [t.value for t in DealType] == ["trend_drop", "new_low", "watchlist_alert"]
    assert DealType("new_low") is DealType.NEW_LOW
