"""
Repositories Package
Exchange Trading Platform
"""

from exchange.db.repositories.market import AssetRepository, RateSampleRepository
from exchange.db.repositories.accounts import (
    MemberRepository,
    BalanceRepository,
    WalletRepository,
    HistoryRepository,
)
from exchange.db.repositories.trading import TradeRepository
from exchange.db.repositories.alerts import AlertRepository
from exchange.db.repositories.settings import SettingsRepository


__all__ = [
    "AssetRepository",
    "RateSampleRepository",
    "MemberRepository",
    "BalanceRepository",
    "WalletRepository",
    "HistoryRepository",
    "TradeRepository",
    "AlertRepository",
    "SettingsRepository",
]
