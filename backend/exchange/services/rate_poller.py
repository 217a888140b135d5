"""
Rate Poller
Exchange Trading Platform

Recurring job that finds assets whose rate is stale, fetches fresh prices
and applies them through the rate engine. Assets are processed
concurrently on a bounded pool; each one succeeds or fails on its own and
every outcome is collected in a PollReport.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import asyncio

from loguru import logger

from exchange.core.clock import Clock
from exchange.core.config import EngineSettings
from exchange.core.exceptions import ExchangeError
from exchange.db.models.market import Asset, MarketClass
from exchange.db.repositories.market import AssetRepository
from exchange.db.session import Database
from exchange.services.price_feed import MarketFeedRouter
from exchange.services.rate_engine import RateEngine
from exchange.services.settings_provider import SettingsProvider, TradingRules


@dataclass
class PollReport:
    """Result of one polling pass."""
    updated: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.updated) + len(self.failed)


class RatePoller:
    """
    Drives the rate engine from the pricing feeds.

    Usage:
        poller = RatePoller(database, router, rate_engine)
        report = await poller.run_once()
    """

    def __init__(
        self,
        database: Database,
        feed_router: MarketFeedRouter,
        rate_engine: RateEngine,
        settings_provider: Optional[SettingsProvider] = None,
        config: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self.database = database
        self.feed_router = feed_router
        self.rate_engine = rate_engine
        self.settings_provider = settings_provider or SettingsProvider()
        self.config = config or EngineSettings()
        self.clock = clock or Clock()
        self._semaphore = asyncio.Semaphore(self.config.max_workers)

    def _intervals(self) -> Dict[MarketClass, int]:
        return {market: self.config.update_interval(market.value) for market in MarketClass}

    async def due_assets(self) -> List[Asset]:
        async with self.database.session() as session:
            return await AssetRepository(session).get_due(self.clock.timestamp(), self._intervals())

    async def _update_asset(self, asset: Asset, rules: TradingRules, report: PollReport) -> None:
        async with self._semaphore:
            try:
                price = await self.feed_router.fetch_price(asset, rules)
                await self.rate_engine.update_rate(asset.id, price)
            except ExchangeError as e:
                logger.warning(f"Rate update skipped for {asset.ticker}: {e.code} {e.message}")
                report.failed[asset.ticker] = e.code
                return
            except Exception as e:
                logger.exception(f"Rate update crashed for {asset.ticker}: {e}")
                report.failed[asset.ticker] = "INTERNAL_ERROR"
                return
            report.updated.append(asset.ticker)

    async def run_once(self) -> PollReport:
        """Update every due asset and wait for all of them."""
        report = PollReport()
        assets = await self.due_assets()
        if not assets:
            return report

        async with self.database.session() as session:
            rules = await self.settings_provider.load(session)

        await asyncio.gather(*(self._update_asset(asset, rules, report) for asset in assets))

        logger.info(f"Rate pass: {len(report.updated)} updated, {len(report.failed)} failed")
        return report

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Poll every `poll_interval` seconds until `stop_event` is set."""
        logger.info(f"Rate poller started (interval {self.config.poll_interval}s)")
        while not stop_event.is_set():
            try:
                await self.run_once()
                await self.rate_engine.prune_samples()
            except ExchangeError as e:
                logger.error(f"Rate pass aborted: {e.code} {e.message}")
            except Exception as e:
                logger.exception(f"Rate pass crashed: {e}")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.config.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Rate poller stopped")
