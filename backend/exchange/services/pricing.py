"""
Pricing Math
Exchange Trading Platform

Pure decimal calculations shared by the rate and order engines:
- Rate rounding and spread
- 24h change
- Order sizing (total real, total, forex pips)
- Live profit and gain

Nothing here touches the database.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Tuple

from exchange.db.models.market import Asset, MarketClass
from exchange.db.models.trading import ForexFields, Trade


HUNDRED = Decimal("100")
ZERO = Decimal("0")
DEFAULT_PIP_DECIMALS = 4


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a user or provider value; None if it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def round_to_scale(value: Decimal, scale: int) -> Decimal:
    """Round half away from zero to `scale` decimal places."""
    return value.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP)


# =============================================================================
# Rates
# =============================================================================

def spread_rates(
    market: MarketClass,
    rate: Decimal,
    buy_spread: Decimal,
    sell_spread: Decimal,
    scale: int,
) -> Tuple[Decimal, Decimal]:
    """
    Buy and sell prices around the mid rate.

    Forex spreads are flat price amounts; every other market uses a
    percentage of the rate.
    """
    if market == MarketClass.FOREX:
        buy = rate + buy_spread
        sell = rate - sell_spread
    else:
        buy = rate + rate * buy_spread / HUNDRED
        sell = rate - rate * sell_spread / HUNDRED
    return round_to_scale(buy, scale), round_to_scale(sell, scale)


def day_change(rate: Decimal, day_ago: Decimal) -> Decimal:
    """Percent change against the rate a day ago, to 2 places."""
    if not day_ago:
        return Decimal("0.00")
    return round_to_scale(rate * HUNDRED / day_ago - HUNDRED, 2)


# =============================================================================
# Order sizing
# =============================================================================

def one_pip(pip_decimals: Optional[int]) -> Decimal:
    """Smallest quoted increment: 0.0001, or 0.01 for JPY quotes."""
    decimals = DEFAULT_PIP_DECIMALS if pip_decimals is None else pip_decimals
    return Decimal(1).scaleb(-decimals)


def order_totals(
    market: MarketClass,
    qty: Decimal,
    rate_entry: Decimal,
    leverage: int,
    lot_size: Decimal,
) -> Tuple[Decimal, Decimal]:
    """
    Returns (total_real, total).

    Forex qty is in lots and its margin lives in the lot size, so total is
    not divided by leverage.
    """
    if market == MarketClass.FOREX:
        total_real = qty * lot_size
        return total_real, total_real
    total_real = qty * rate_entry
    return total_real, total_real / Decimal(leverage)


def forex_entry(rate_entry: Decimal, total_real: Decimal, pip_decimals: Optional[int]) -> ForexFields:
    pip = one_pip(pip_decimals)
    return ForexFields(
        one_pip=pip,
        pips_rate_entry=rate_entry / pip,
        forex_amount=total_real / rate_entry,
    )


def limit_deviation(rate_entry: Decimal, market_rate: Decimal) -> Decimal:
    """How far a limit price sits from the market, in percent."""
    return rate_entry / market_rate * HUNDRED - HUNDRED


# =============================================================================
# Profit
# =============================================================================

@dataclass(frozen=True)
class ProfitSnapshot:
    """Live result of an open trade at the asset's current quote."""
    rate_closed: Decimal
    profit: Decimal
    gain: Decimal
    forex: ForexFields

    @property
    def profit_abs(self) -> Decimal:
        return abs(self.profit)

    @property
    def profit_negative(self) -> bool:
        return self.profit < 0


def closing_rate(trade: Trade, asset: Asset) -> Decimal:
    """A buy closes at the sell price and a sell at the buy price."""
    return asset.rate_sell if trade.is_buy else asset.rate_buy


def calculate_profit(trade: Trade, asset: Asset, usd_pip_value: Decimal = Decimal("10")) -> ProfitSnapshot:
    """
    Profit of `trade` if it were closed against `asset`'s current quote.

    Non-forex profit is the price delta on the leveraged total, scaled by
    leverage twice. Forex profit is pips moved times pip value.
    """
    rate_closed = closing_rate(trade, asset)
    is_sell = not trade.is_buy
    forex = trade.forex

    if asset.is_forex:
        if (asset.base_currency or "").upper() == "USD":
            pip_value = usd_pip_value * trade.qty
        else:
            pip_value = forex.one_pip / rate_closed * trade.total_real
        pips_closed = rate_closed / forex.one_pip
        profit = (pips_closed - forex.pips_rate_entry) * pip_value
        if is_sell:
            profit = -profit
        forex = ForexFields(
            one_pip=forex.one_pip,
            pips_rate_entry=forex.pips_rate_entry,
            pips_rate_closed=pips_closed,
            pip_value=pip_value,
            forex_amount=forex.forex_amount,
        )
    else:
        leverage = Decimal(trade.leverage)
        new_total = rate_closed * trade.qty / leverage
        profit = trade.total - new_total if is_sell else new_total - trade.total
        # Leverage is applied twice
        profit = profit * leverage * leverage

    gain = asset.rate * HUNDRED / trade.market_rate - HUNDRED
    if is_sell:
        gain = -gain
    if asset.is_forex:
        gain = gain * Decimal(trade.leverage)

    return ProfitSnapshot(rate_closed=rate_closed, profit=profit, gain=gain, forex=forex)


def apply_profit(trade: Trade, snapshot: ProfitSnapshot) -> None:
    """Copy a snapshot onto the trade row."""
    trade.profit = snapshot.profit
    trade.profit_abs = snapshot.profit_abs
    trade.profit_negative = snapshot.profit_negative
    trade.gain = snapshot.gain
    trade.apply_forex(snapshot.forex)
