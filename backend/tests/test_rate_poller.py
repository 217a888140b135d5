"""
Tests for the Rate Poller

Feeds and the rate engine are mocked; due-asset selection runs against
the in-memory database.
"""

import asyncio
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy import text

from exchange.core.config import EngineSettings
from exchange.core.exceptions import FeedError, PersistenceError
from exchange.db.models import Asset, MarketClass
from exchange.services.rate_poller import PollReport, RatePoller


pytestmark = pytest.mark.integration


@pytest.fixture
def mock_rate_engine():
    engine = MagicMock()
    engine.update_rate = AsyncMock()
    engine.prune_samples = AsyncMock(return_value=0)
    return engine


@pytest.fixture
def poller(database, mock_feed_router, mock_rate_engine, settings_provider, clock):
    config = EngineSettings(max_workers=4, poll_interval=0.01)
    return RatePoller(database, mock_feed_router, mock_rate_engine, settings_provider, config, clock)


class TestPollReport:
    """Tests for PollReport."""

    def test_total(self):
        report = PollReport(updated=["ACME"], failed={"BTC": "FEED_UNAVAILABLE"})
        assert report.total == 2


class TestDueAssets:
    """Tests for due asset selection."""

    @pytest.mark.asyncio
    async def test_fresh_assets_are_skipped(self, poller, seed):
        assert await poller.due_assets() == []

    @pytest.mark.asyncio
    async def test_stale_assets_are_due(self, poller, clock, seed):
        clock.advance(61)
        due = await poller.due_assets()
        assert {a.ticker for a in due} == {"ACME", "USDCHF"}

    @pytest.mark.asyncio
    async def test_interval_is_per_market(self, database, mock_feed_router, mock_rate_engine, clock, seed):
        config = EngineSettings(update_intervals={"stock": 60, "forex": 600})
        poller = RatePoller(database, mock_feed_router, mock_rate_engine, config=config, clock=clock)

        clock.advance(120)
        due = await poller.due_assets()
        assert [a.ticker for a in due] == ["ACME"]

    @pytest.mark.asyncio
    async def test_untradable_never_due(self, database, poller, clock, seed):
        async with database.transaction() as session:
            asset = await session.get(Asset, seed.stock.id)
            asset.tradable = False

        clock.advance(3600)
        assert [a.ticker for a in await poller.due_assets()] == ["USDCHF"]


class TestRunOnce:
    """Tests for one polling pass."""

    @pytest.mark.asyncio
    async def test_updates_every_due_asset(self, poller, mock_feed_router, mock_rate_engine, clock, seed):
        clock.advance(61)
        report = await poller.run_once()

        assert sorted(report.updated) == ["ACME", "USDCHF"]
        assert report.failed == {}
        assert mock_rate_engine.update_rate.await_count == 2
        mock_rate_engine.update_rate.assert_any_await(seed.stock.id, "101.00")

    @pytest.mark.asyncio
    async def test_nothing_due(self, poller, mock_feed_router, seed):
        report = await poller.run_once()
        assert report.total == 0
        mock_feed_router.fetch_price.assert_not_called()

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, poller, mock_feed_router, mock_rate_engine, clock, seed):
        """One bad asset does not block the others."""

        async def fetch(asset, rules):
            if asset.ticker == "ACME":
                raise FeedError("provider down")
            return "0.9011"

        mock_feed_router.fetch_price = AsyncMock(side_effect=fetch)
        clock.advance(61)

        report = await poller.run_once()

        assert report.updated == ["USDCHF"]
        assert report.failed == {"ACME": "FEED_UNAVAILABLE"}
        mock_rate_engine.update_rate.assert_awaited_once_with(seed.forex.id, "0.9011")

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_recorded(self, poller, mock_rate_engine, clock, seed):
        mock_rate_engine.update_rate = AsyncMock(side_effect=[RuntimeError("boom"), None])
        clock.advance(61)

        report = await poller.run_once()

        assert len(report.updated) == 1
        assert list(report.failed.values()) == ["INTERNAL_ERROR"]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, database, mock_feed_router, mock_rate_engine, settings_provider, clock):
        """No more than max_workers updates run at once."""
        assets = [
            Asset(id=i, market=MarketClass.CRYPTO, ticker=f"C{i}", rate=Decimal("1"))
            for i in range(1, 11)
        ]
        active = 0
        peak = 0

        async def slow_update(asset_id, price):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        mock_rate_engine.update_rate = AsyncMock(side_effect=slow_update)
        config = EngineSettings(max_workers=3)
        poller = RatePoller(database, mock_feed_router, mock_rate_engine, settings_provider, config, clock)
        poller.due_assets = AsyncMock(return_value=assets)

        report = await poller.run_once()

        assert len(report.updated) == 10
        assert 1 < peak <= 3


class TestRunForever:
    """Tests for the polling loop."""

    @pytest.mark.asyncio
    async def test_stops_on_event(self, poller, mock_rate_engine, seed):
        stop_event = asyncio.Event()
        poller.run_once = AsyncMock(side_effect=lambda: stop_event.set() or PollReport())

        await asyncio.wait_for(poller.run_forever(stop_event), timeout=1)

        poller.run_once.assert_awaited_once()
        mock_rate_engine.prune_samples.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_survives_unexpected_errors(self, poller):
        stop_event = asyncio.Event()
        calls = 0

        async def flaky_pass():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("connection reset")
            stop_event.set()
            return PollReport()

        poller.run_once = flaky_pass

        await asyncio.wait_for(poller.run_forever(stop_event), timeout=1)
        assert calls == 2

    @pytest.mark.asyncio
    async def test_survives_storage_failure(self, database, poller, seed):
        """A broken database skips the pass instead of stopping the loop."""
        async with database.engine.begin() as conn:
            await conn.execute(text("DROP TABLE asset"))

        with pytest.raises(PersistenceError):
            await poller.due_assets()

        stop_event = asyncio.Event()
        real_pass = poller.run_once
        calls = 0

        async def counted_pass():
            nonlocal calls
            calls += 1
            if calls == 2:
                stop_event.set()
            return await real_pass()

        poller.run_once = counted_pass

        await asyncio.wait_for(poller.run_forever(stop_event), timeout=1)
        assert calls == 2
