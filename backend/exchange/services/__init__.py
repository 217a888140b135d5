"""
Services Package
Exchange Trading Platform

Engine services: pricing feeds, rate engine, order engine, settlement
ledger, alerts and the rate poller.
"""

from exchange.services.alerts import AlertService
from exchange.services.ledger import FundsService, SettlementLedger
from exchange.services.order_engine import (
    BulkCloseFilter,
    BulkCloseResult,
    OrderEngine,
    OrderRequest,
)
from exchange.services.price_feed import (
    CryptonatorFeed,
    FcsFeed,
    IexFeed,
    MarketFeedRouter,
    PriceFeed,
    normalize_price,
)
from exchange.services.rate_engine import RateEngine, RateUpdate
from exchange.services.rate_poller import PollReport, RatePoller
from exchange.services.settings_provider import SettingsProvider, TradingRules


__all__ = [
    "AlertService",
    "FundsService",
    "SettlementLedger",
    "BulkCloseFilter",
    "BulkCloseResult",
    "OrderEngine",
    "OrderRequest",
    "CryptonatorFeed",
    "FcsFeed",
    "IexFeed",
    "MarketFeedRouter",
    "PriceFeed",
    "normalize_price",
    "RateEngine",
    "RateUpdate",
    "PollReport",
    "RatePoller",
    "SettingsProvider",
    "TradingRules",
]
