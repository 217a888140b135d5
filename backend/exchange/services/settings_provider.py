"""
Trading Rules Provider
Exchange Trading Platform

Builds an immutable snapshot of the operator-editable trading rules. The
snapshot is re-read inside every operation so admin edits apply to the
next order without a restart.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from exchange.core.config import FeedSettings, TradingSettings
from exchange.db.models.market import MarketClass
from exchange.db.models.settings import SystemSettings
from exchange.db.repositories.settings import SettingsRepository


@dataclass(frozen=True)
class TradingRules:
    """System-wide trading defaults for one operation."""
    leverage_caps: Dict[MarketClass, int] = field(default_factory=dict)
    stop_loss_protection: Decimal = Decimal("0")
    take_profit_protection: Decimal = Decimal("0")
    stop_loss_allowed: Decimal = Decimal("0")
    take_profit_allowed: Decimal = Decimal("0")
    forex_lot_size: Decimal = Decimal("100000")
    forex_usd_pip_value: Decimal = Decimal("10")
    api_key_iex: str = ""
    api_key_fcs: str = ""

    def leverage_for(self, market: MarketClass) -> int:
        return self.leverage_caps[market]


def _pick(value, fallback):
    """Row value unless it is unset (zero or empty)."""
    return value if value else fallback


class SettingsProvider:
    """
    Reads trading rules from the settings row, falling back to the
    environment defaults for any unset column.
    """

    def __init__(self, trading: Optional[TradingSettings] = None, feed: Optional[FeedSettings] = None):
        self.trading = trading or TradingSettings()
        self.feed = feed or FeedSettings()

    def defaults(self) -> TradingRules:
        return self._build(None)

    async def load(self, session: AsyncSession) -> TradingRules:
        row = await SettingsRepository(session).current()
        return self._build(row)

    def _build(self, row: Optional[SystemSettings]) -> TradingRules:
        t = self.trading
        get = (lambda name: getattr(row, name)) if row is not None else (lambda name: None)

        return TradingRules(
            leverage_caps={
                MarketClass.CRYPTO: _pick(get("leverage_crypto"), t.leverage_crypto),
                MarketClass.STOCK: _pick(get("leverage_stock"), t.leverage_stock),
                MarketClass.FOREX: _pick(get("leverage_forex"), t.leverage_forex),
                MarketClass.COMMODITY: _pick(get("leverage_commodity"), t.leverage_commodity),
                MarketClass.INDEX: _pick(get("leverage_index"), t.leverage_index),
            },
            stop_loss_protection=_pick(get("stop_loss_protection"), t.stop_loss_protection),
            take_profit_protection=_pick(get("take_profit_protection"), t.take_profit_protection),
            stop_loss_allowed=_pick(get("stop_loss_allowed"), t.stop_loss_allowed),
            take_profit_allowed=_pick(get("take_profit_allowed"), t.take_profit_allowed),
            forex_lot_size=t.forex_lot_size,
            forex_usd_pip_value=t.forex_usd_pip_value,
            api_key_iex=_pick(get("api_key_iex"), self.feed.iex_api_key),
            api_key_fcs=_pick(get("api_key_fcs"), self.feed.fcs_api_key),
        )
