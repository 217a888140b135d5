"""
Tests for the pricing math.

Pure functions; no database.
"""

import pytest
from decimal import Decimal

from exchange.db.models import Asset, MarketClass, Trade, TradeKind, TradeSide, TradeStatus
from exchange.services import pricing


def make_asset(market=MarketClass.STOCK, rate="100", rate_buy=None, rate_sell=None, **kwargs):
    rate = Decimal(rate)
    return Asset(
        market=market,
        ticker=kwargs.pop("ticker", "ACME"),
        rate=rate,
        rate_buy=Decimal(rate_buy) if rate_buy else rate,
        rate_sell=Decimal(rate_sell) if rate_sell else rate,
        **kwargs,
    )


def make_trade(side=TradeSide.BUY, qty="2", rate_entry="100", leverage=1, market_rate="100", **kwargs):
    qty = Decimal(qty)
    rate_entry = Decimal(rate_entry)
    total_real = kwargs.pop("total_real", qty * rate_entry)
    trade = Trade(
        member_id=1,
        asset_id=1,
        kind=TradeKind.MARKET,
        side=side,
        status=TradeStatus.OPEN,
        currency="USD",
        market_rate=Decimal(market_rate),
        rate_entry=rate_entry,
        qty=qty,
        leverage=leverage,
        total_real=total_real,
        total=kwargs.pop("total", total_real / Decimal(leverage)),
    )
    trade.apply_forex(kwargs.pop("forex", pricing.ForexFields()))
    return trade


class TestParseDecimal:
    """Tests for parse_decimal."""

    def test_strings_and_numbers(self):
        """Test accepted inputs."""
        assert pricing.parse_decimal("101.25") == Decimal("101.25")
        assert pricing.parse_decimal(" 7 ") == Decimal("7")
        assert pricing.parse_decimal(3) == Decimal("3")
        assert pricing.parse_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", [None, "", "abc", "NaN", "Infinity", True])
    def test_rejected(self, value):
        """Test unusable inputs give None."""
        assert pricing.parse_decimal(value) is None


class TestRates:
    """Tests for rounding, spread and change."""

    def test_round_half_up(self):
        assert pricing.round_to_scale(Decimal("1.005"), 2) == Decimal("1.01")
        assert pricing.round_to_scale(Decimal("101.234"), 2) == Decimal("101.23")

    def test_percentage_spread(self):
        """Non-forex spreads are a percentage of the rate."""
        buy, sell = pricing.spread_rates(
            MarketClass.STOCK, Decimal("100"), Decimal("1"), Decimal("0.5"), 2
        )
        assert buy == Decimal("101.00")
        assert sell == Decimal("99.50")

    def test_forex_spread_is_flat(self):
        """Forex spreads are added as price amounts."""
        buy, sell = pricing.spread_rates(
            MarketClass.FOREX, Decimal("1.1000"), Decimal("0.0002"), Decimal("0.0002"), 4
        )
        assert buy == Decimal("1.1002")
        assert sell == Decimal("1.0998")

    def test_day_change(self):
        assert pricing.day_change(Decimal("110"), Decimal("100")) == Decimal("10.00")
        assert pricing.day_change(Decimal("95"), Decimal("100")) == Decimal("-5.00")

    def test_day_change_without_history(self):
        assert pricing.day_change(Decimal("110"), Decimal("0")) == Decimal("0.00")


class TestOrderSizing:
    """Tests for totals and pips."""

    def test_leveraged_total(self):
        total_real, total = pricing.order_totals(
            MarketClass.STOCK, Decimal("2"), Decimal("100"), 2, Decimal("100000")
        )
        assert total_real == Decimal("200")
        assert total == Decimal("100")

    def test_forex_total_uses_lot_size(self):
        total_real, total = pricing.order_totals(
            MarketClass.FOREX, Decimal("0.5"), Decimal("1.1"), 100, Decimal("100000")
        )
        assert total_real == Decimal("50000")
        assert total == total_real

    def test_one_pip(self):
        assert pricing.one_pip(4) == Decimal("0.0001")
        assert pricing.one_pip(2) == Decimal("0.01")
        assert pricing.one_pip(None) == Decimal("0.0001")

    def test_forex_entry(self):
        fields = pricing.forex_entry(Decimal("0.9000"), Decimal("100000"), 4)
        assert fields.pips_rate_entry == Decimal("9000")
        assert fields.one_pip == Decimal("0.0001")

    def test_limit_deviation(self):
        assert pricing.limit_deviation(Decimal("95"), Decimal("100")) == Decimal("-5")
        assert pricing.limit_deviation(Decimal("300"), Decimal("100")) == Decimal("200")


class TestProfit:
    """Tests for calculate_profit."""

    def test_unleveraged_buy(self):
        trade = make_trade(qty="2", rate_entry="100")
        asset = make_asset(rate="94")
        snapshot = pricing.calculate_profit(trade, asset)
        assert snapshot.rate_closed == Decimal("94")
        assert snapshot.profit == Decimal("-12")
        assert snapshot.profit_negative is True
        assert snapshot.gain == Decimal("-6")

    def test_leverage_applied_twice(self):
        """2 units, 100 -> 110, leverage 2 pays 40."""
        trade = make_trade(qty="2", rate_entry="100", leverage=2)
        asset = make_asset(rate="110")
        snapshot = pricing.calculate_profit(trade, asset)
        assert trade.total == Decimal("100")
        assert snapshot.profit == Decimal("40")
        assert snapshot.gain == Decimal("10")

    def test_sell_profits_when_rate_falls(self):
        trade = make_trade(side=TradeSide.SELL, qty="1", rate_entry="100")
        asset = make_asset(rate="99")
        snapshot = pricing.calculate_profit(trade, asset)
        assert snapshot.profit == Decimal("1")
        assert snapshot.gain == Decimal("1")

    def test_buy_closes_at_sell_price(self):
        trade = make_trade(qty="1", rate_entry="101")
        asset = make_asset(rate="100", rate_buy="101", rate_sell="99")
        assert pricing.closing_rate(trade, asset) == Decimal("99")

    def test_forex_usd_base_pip_value(self):
        """One lot moving 10 pips on a USD-based pair is worth 100."""
        forex = pricing.forex_entry(Decimal("0.9000"), Decimal("100000"), 4)
        trade = make_trade(
            qty="1",
            rate_entry="0.9000",
            leverage=100,
            market_rate="0.9000",
            total_real=Decimal("100000"),
            total=Decimal("100000"),
            forex=forex,
        )
        asset = make_asset(
            market=MarketClass.FOREX, rate="0.9010", ticker="USDCHF", base_currency="USD", pip_decimals=4
        )
        snapshot = pricing.calculate_profit(trade, asset, Decimal("10"))
        assert snapshot.forex.pip_value == Decimal("10")
        assert snapshot.forex.pips_rate_closed == Decimal("9010")
        assert snapshot.profit == Decimal("100")
        assert snapshot.gain > 0

    def test_forex_quote_base_pip_value(self):
        """Non-USD base converts the pip through the closing rate."""
        forex = pricing.forex_entry(Decimal("1.2500"), Decimal("100000"), 4)
        trade = make_trade(
            qty="1",
            rate_entry="1.2500",
            leverage=100,
            market_rate="1.2500",
            total_real=Decimal("100000"),
            total=Decimal("100000"),
            forex=forex,
        )
        asset = make_asset(
            market=MarketClass.FOREX, rate="1.2500", ticker="EURUSD", base_currency="EUR", pip_decimals=4
        )
        snapshot = pricing.calculate_profit(trade, asset)
        assert snapshot.forex.pip_value == Decimal("8")
        assert snapshot.profit == Decimal("0")

    def test_apply_profit(self):
        trade = make_trade(qty="2", rate_entry="100")
        snapshot = pricing.calculate_profit(trade, make_asset(rate="94"))
        pricing.apply_profit(trade, snapshot)
        assert trade.profit == Decimal("-12")
        assert trade.profit_abs == Decimal("12")
        assert trade.profit_negative is True
        assert trade.gain == Decimal("-6")
