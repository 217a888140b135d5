"""
Database Models Package
Exchange Trading Platform

Exports all SQLAlchemy models for the application.
"""

from exchange.db.base import Base

from exchange.db.models.market import (
    MarketClass,
    Asset,
    RateSample,
)

from exchange.db.models.accounts import (
    HistoryKind,
    HistoryStatus,
    Member,
    Balance,
    Wallet,
    History,
)

from exchange.db.models.trading import (
    TradeSide,
    TradeKind,
    TradeStatus,
    ForexFields,
    Trade,
)

from exchange.db.models.alerts import (
    AlertDirection,
    AlertStatus,
    Alert,
)

from exchange.db.models.settings import (
    SETTINGS_ROW_ID,
    SystemSettings,
)


__all__ = [
    "Base",
    # Market
    "MarketClass",
    "Asset",
    "RateSample",
    # Accounts
    "HistoryKind",
    "HistoryStatus",
    "Member",
    "Balance",
    "Wallet",
    "History",
    # Trading
    "TradeSide",
    "TradeKind",
    "TradeStatus",
    "ForexFields",
    "Trade",
    # Alerts
    "AlertDirection",
    "AlertStatus",
    "Alert",
    # Settings
    "SETTINGS_ROW_ID",
    "SystemSettings",
]
