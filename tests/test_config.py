"""
Tests for configuration validation and coin arithmetic helpers
"""

from datetime import datetime, timedelta, UTC
from decimal import Decimal

import pytest

import config.config as app_config
from src.utils.coins import floor_coins, net_after_commission, net_after_fee_percentage, percent_of
from src.utils.dates import ensure_utc, period_start


# ===========================
# CONFIG
# ===========================


def test_validate_config_ok(monkeypatch):
    monkeypatch.setattr(app_config, "JWT_SECRET", "secret")
    monkeypatch.setattr(app_config, "ENVIRONMENT", "development")
    assert app_config.validate_config() is True


def test_validate_config_requires_jwt_secret(monkeypatch):
    monkeypatch.setattr(app_config, "JWT_SECRET", "")

    with pytest.raises(ValueError, match="JWT_SECRET is required"):
        app_config.validate_config()


def test_validate_config_production_requires_bot_and_admins(monkeypatch):
    monkeypatch.setattr(app_config, "JWT_SECRET", "secret")
    monkeypatch.setattr(app_config, "ENVIRONMENT", "production")
    monkeypatch.setattr(app_config, "BOT_TOKEN", "")
    monkeypatch.setattr(app_config, "ADMIN_IDS", [])

    with pytest.raises(ValueError) as exc_info:
        app_config.validate_config()

    assert "BOT_TOKEN is required" in str(exc_info.value)
    assert "ADMIN_IDS is required" in str(exc_info.value)


# ===========================
# COINS
# ===========================


@pytest.mark.parametrize(
    "gross, rate, expected",
    [
        (35, 0.7, (10, 25)),
        (100, 0.7, (30, 70)),
        (1, 0.7, (0, 1)),
        (0, 0.7, (0, 0)),
    ],
)
def test_net_after_commission(gross, rate, expected):
    assert net_after_commission(gross, rate) == expected


def test_net_after_fee_percentage():
    assert net_after_fee_percentage(100, 20) == (80, 20)
    assert net_after_fee_percentage(7, 20) == (5, 2)


def test_percent_of_floors():
    assert percent_of(100, 5) == 5
    assert percent_of(99, 5) == 4
    assert percent_of(500, 60) == 300
    assert floor_coins(Decimal("10.999")) == 10


# ===========================
# DATES
# ===========================


def test_ensure_utc():
    naive = datetime(2026, 1, 1, 12, 0)
    assert ensure_utc(naive).tzinfo is UTC
    assert ensure_utc(naive) == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def test_period_start():
    now = datetime(2026, 10, 19, 15, 30, tzinfo=UTC)
    assert period_start("daily", now) == datetime(2026, 10, 19, tzinfo=UTC)
    assert period_start("weekly", now) == now - timedelta(days=7)
    assert period_start("monthly", now) == now - timedelta(days=30)
    with pytest.raises(ValueError):
        period_start("yearly", now)
