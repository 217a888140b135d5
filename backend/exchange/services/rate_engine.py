"""
Rate Engine
Exchange Trading Platform

Applies one new raw price to an asset and propagates it:

1. Round, spread and 24h change, persisted with a throttled rate sample
2. Rate notification to dashboards
3. Pending limit activation
4. Alert firing
5. Profit refresh and SL/TP auto-close of live trades

A failure affects only the asset being updated.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from loguru import logger

from exchange.core.clock import Clock
from exchange.core.config import EngineSettings
from exchange.core.events import EventBus, RateEvent
from exchange.core.exceptions import BusinessRuleError, NotFoundError, ValidationError
from exchange.db.models.market import RateSample
from exchange.db.repositories.market import AssetRepository, RateSampleRepository
from exchange.db.session import Database
from exchange.services import pricing
from exchange.services.alerts import AlertService
from exchange.services.order_engine import OrderEngine


@dataclass
class RateUpdate:
    """Outcome of one applied rate."""
    asset_id: int
    ticker: str
    rate: Decimal
    rate_buy: Decimal
    rate_sell: Decimal
    change: Decimal
    sampled: bool
    activated: List[int] = field(default_factory=list)
    alerts_fired: List[int] = field(default_factory=list)
    closed: List[int] = field(default_factory=list)


class RateEngine:
    """
    Ingests prices and drives the downstream reactions.

    Usage:
        engine = RateEngine(database, event_bus, order_engine, alert_service)
        await engine.update_rate(asset.id, "101.25")
    """

    def __init__(
        self,
        database: Database,
        event_bus: EventBus,
        order_engine: OrderEngine,
        alert_service: AlertService,
        config: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self.database = database
        self.event_bus = event_bus
        self.order_engine = order_engine
        self.alert_service = alert_service
        self.config = config or EngineSettings()
        self.clock = clock or Clock()

    @staticmethod
    def _parse_rate(raw_price) -> Decimal:
        rate = pricing.parse_decimal(raw_price)
        if rate is None:
            raise ValidationError("RATE_INVALID")
        if rate <= 0:
            raise ValidationError("RATE_IS_ZERO")
        return rate

    async def update_rate(self, asset_id: int, raw_price) -> RateUpdate:
        """
        Apply a raw provider price to an asset.

        Raises:
            ValidationError: price unparsable (RATE_INVALID) or not positive (RATE_IS_ZERO)
            NotFoundError: unknown asset
            BusinessRuleError: asset not tradable or inactive
        """
        parsed = self._parse_rate(raw_price)
        now = self.clock.timestamp()

        async with self.database.transaction() as session:
            asset = await AssetRepository(session).get(asset_id, for_update=True)
            if asset is None:
                raise NotFoundError("INVALID_ASSET")
            if not asset.tradable or not asset.active:
                raise BusinessRuleError("TRADE_ASSET_NOT_TRADABLE")

            rate = pricing.round_to_scale(parsed, asset.decimal_scale)
            if rate <= 0:
                raise ValidationError("RATE_IS_ZERO")
            rate_buy, rate_sell = pricing.spread_rates(
                asset.market, rate, asset.buy_spread, asset.sell_spread, asset.decimal_scale
            )

            samples = RateSampleRepository(session)
            sampled = not await samples.exists_after(asset.id, now - self.config.sample_throttle)
            if sampled:
                await samples.add(RateSample(asset_id=asset.id, rate=rate, timestamp=now))

            day_ago = await samples.first_after(asset.id, now - self.config.day_window)
            change = pricing.day_change(rate, day_ago.rate if day_ago else rate)

            asset.rate = rate
            asset.rate_buy = rate_buy
            asset.rate_sell = rate_sell
            asset.change = change
            asset.updated = now

        logger.debug(f"{asset.ticker} rate {rate} (buy {rate_buy}, sell {rate_sell}, {change}%)")
        await self.event_bus.publish(
            RateEvent(
                asset_id=asset.id,
                rate=rate,
                rate_buy=rate_buy,
                rate_sell=rate_sell,
                change=change,
                sentiment=asset.sentiment,
                sentiment_type=asset.sentiment_type,
            )
        )

        result = RateUpdate(
            asset_id=asset.id,
            ticker=asset.ticker,
            rate=rate,
            rate_buy=rate_buy,
            rate_sell=rate_sell,
            change=change,
            sampled=sampled,
        )
        result.activated = await self.order_engine.activate_pending(asset)
        result.alerts_fired = await self.alert_service.fire_alerts(asset)
        result.closed = await self.order_engine.refresh_open_orders(asset)
        return result

    async def prune_samples(self) -> int:
        """Delete rate samples past the retention window."""
        before = self.clock.timestamp() - self.config.sample_retention
        async with self.database.transaction() as session:
            deleted = await RateSampleRepository(session).delete_before(before)
        if deleted:
            logger.info(f"Pruned {deleted} rate samples")
        return deleted

    async def performance(self, asset_id: int, window: Optional[int] = None) -> List[RateSample]:
        """Rate samples for the trailing `window` seconds (default one day)."""
        since = self.clock.timestamp() - (window or self.config.day_window)
        async with self.database.session() as session:
            return await RateSampleRepository(session).for_asset(asset_id, since)
