"""
Tests for configuration, trading rules and error codes.
"""

import pytest
from decimal import Decimal

from exchange.core.config import DatabaseSettings, TradingSettings
from exchange.core.exceptions import (
    BusinessRuleError,
    ExchangeError,
    FeedError,
    PersistenceError,
)
from exchange.db.models import MarketClass, SystemSettings
from exchange.services.settings_provider import SettingsProvider


class TestMarketClass:
    """Tests for legacy market id mapping."""

    @pytest.mark.parametrize("market_id,market", [
        (1, MarketClass.CRYPTO),
        (2, MarketClass.STOCK),
        (3, MarketClass.FOREX),
        (4, MarketClass.STOCK),
        (5, MarketClass.COMMODITY),
        (6, MarketClass.STOCK),
        (7, MarketClass.INDEX),
    ])
    def test_from_market_id(self, market_id, market):
        assert MarketClass.from_market_id(market_id) == market

    def test_unknown_market_id(self):
        with pytest.raises(ValueError):
            MarketClass.from_market_id(99)


class TestExceptions:
    """Tests for error codes."""

    def test_response_shape(self):
        assert BusinessRuleError("MAX_STOP_LOSS").to_response() == {"status": False, "error": "MAX_STOP_LOSS"}

    def test_feed_error_code(self):
        error = FeedError("timeout")
        assert isinstance(error, ExchangeError)
        assert error.code == "FEED_UNAVAILABLE"
        assert error.message == "timeout"

    def test_persistence_error_asks_for_retry(self):
        assert PersistenceError("deadlock").code == "TRY_AGAIN"


class TestConfig:
    """Tests for settings."""

    def test_database_url_override(self):
        config = DatabaseSettings(url="sqlite+aiosqlite:///:memory:")
        assert config.async_url == "sqlite+aiosqlite:///:memory:"

    def test_database_url_from_parts(self):
        config = DatabaseSettings(host="db", port=5433, user="u", password="p", name="ex")
        assert config.async_url == "postgresql+asyncpg://u:p@db:5433/ex"

    def test_trading_env_override(self, monkeypatch):
        monkeypatch.setenv("TRADING_LEVERAGE_STOCK", "3")
        assert TradingSettings().leverage_stock == 3


class TestSettingsProvider:
    """Tests for the trading rules snapshot."""

    def test_defaults(self):
        rules = SettingsProvider(TradingSettings()).defaults()
        assert rules.leverage_for(MarketClass.STOCK) == 5
        assert rules.leverage_for(MarketClass.FOREX) == 100
        assert rules.stop_loss_protection == Decimal("80")
        assert rules.take_profit_protection == Decimal("500")

    @pytest.mark.asyncio
    async def test_settings_row_overrides(self, database):
        async with database.transaction() as session:
            session.add(SystemSettings(
                leverage_stock=2,
                stop_loss_protection=Decimal("25"),
                api_key_fcs="row-key",
            ))

        async with database.session() as session:
            rules = await SettingsProvider(TradingSettings()).load(session)

        assert rules.leverage_for(MarketClass.STOCK) == 2
        assert rules.leverage_for(MarketClass.CRYPTO) == 2
        assert rules.stop_loss_protection == Decimal("25")
        assert rules.take_profit_protection == Decimal("500")
        assert rules.api_key_fcs == "row-key"

    @pytest.mark.asyncio
    async def test_missing_row_uses_defaults(self, database):
        async with database.session() as session:
            rules = await SettingsProvider(TradingSettings(leverage_crypto=4)).load(session)
        assert rules.leverage_for(MarketClass.CRYPTO) == 4
