"""
Pricing Feed Adapter
Exchange Trading Platform

Fetches the latest raw price for an asset from the market data provider
that covers its market class, normalized to a decimal string.

Providers:
- Cryptonator: crypto
- IEX Cloud: stocks and energy commodities
- FCS API: forex pairs and indices
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import asyncio

import aiohttp
from loguru import logger

from exchange.core.config import FeedSettings
from exchange.core.exceptions import FeedError
from exchange.db.models.market import Asset, MarketClass
from exchange.services.pricing import parse_decimal
from exchange.services.settings_provider import TradingRules


RETRYABLE_STATUSES = {400, 500, 502, 503, 504}


def normalize_price(value: Any) -> str:
    """Provider number or string as a plain positive decimal string."""
    price = parse_decimal(value)
    if price is None or price <= 0:
        raise FeedError(f"Unusable price from provider: {value!r}")
    return format(price, "f")


class PriceFeed(ABC):
    """
    Base class for market data providers.

    Owns an aiohttp session and a bounded retry around every request.
    """

    name: str = "base"

    def __init__(self, config: Optional[FeedSettings] = None, session: Optional[aiohttp.ClientSession] = None):
        self.config = config or FeedSettings()
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        """
        GET `url` and decode JSON, retrying timeouts, connection errors,
        400 and 5xx responses up to `max_attempts` times.
        """
        session = await self._get_session()
        last_error = "no attempt made"

        for attempt in range(1, self.config.max_attempts + 1):
            try:
                async with session.get(url, params=params) as response:
                    if response.status == 200:
                        return await response.json(content_type=None)
                    last_error = f"HTTP {response.status}"
                    if response.status not in RETRYABLE_STATUSES:
                        break
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = f"{type(e).__name__}: {e}"

            if attempt < self.config.max_attempts:
                logger.debug(f"{self.name} attempt {attempt} failed ({last_error}), retrying")
                await asyncio.sleep(self.config.retry_backoff)

        raise FeedError(f"{self.name} request failed: {last_error}")

    @abstractmethod
    async def fetch_price(self, asset: Asset, rules: TradingRules) -> str:
        """Latest price for `asset` as a decimal string."""
        pass


class CryptonatorFeed(PriceFeed):
    """Crypto prices in USD from Cryptonator."""

    name = "cryptonator"

    async def fetch_price(self, asset: Asset, rules: TradingRules) -> str:
        url = f"{self.config.cryptonator_url}/ticker/{asset.ticker.lower()}-usd"
        data = await self._get_json(url)
        if not isinstance(data, dict) or data.get("success") is not True:
            raise FeedError(f"Cryptonator unavailable for {asset.ticker}")
        return normalize_price((data.get("ticker") or {}).get("price"))


class IexFeed(PriceFeed):
    """Stock quotes and energy commodity series from IEX Cloud."""

    name = "iex"

    async def fetch_price(self, asset: Asset, rules: TradingRules) -> str:
        params = {"token": rules.api_key_iex}
        ticker = asset.ticker.lower()

        if asset.market == MarketClass.COMMODITY:
            data = await self._get_json(f"{self.config.iex_url}/time-series/energy/{ticker}", params)
            if not isinstance(data, list) or not data:
                raise FeedError(f"IEX returned no series for {asset.ticker}")
            return normalize_price(data[-1].get("value"))

        data = await self._get_json(f"{self.config.iex_url}/stock/{ticker}/quote", params)
        if not isinstance(data, dict):
            raise FeedError(f"IEX returned no quote for {asset.ticker}")
        return normalize_price(data.get("latestPrice"))


class FcsFeed(PriceFeed):
    """Forex and index prices from FCS API, keyed by FCS symbol id."""

    name = "fcs"

    ENDPOINTS = {
        MarketClass.FOREX: "forex/latest",
        MarketClass.INDEX: "stock/indices_latest",
        MarketClass.CRYPTO: "crypto/latest",
        MarketClass.STOCK: "stock/latest",
    }

    async def fetch_price(self, asset: Asset, rules: TradingRules) -> str:
        if not asset.fcs_id:
            raise FeedError(f"{asset.ticker} has no FCS id")
        endpoint = self.ENDPOINTS.get(asset.market)
        if endpoint is None:
            raise FeedError(f"FCS does not cover {asset.market.value}")

        data = await self._get_json(
            f"{self.config.fcs_url}/{endpoint}",
            {"id": asset.fcs_id, "access_key": rules.api_key_fcs},
        )
        if not isinstance(data, dict) or data.get("status") is not True:
            raise FeedError(f"FCS query failed for {asset.ticker}: {data.get('msg') if isinstance(data, dict) else data}")

        for row in data.get("response") or []:
            if str(row.get("id")) == str(asset.fcs_id):
                return normalize_price(row.get("price"))
        raise FeedError(f"FCS response has no price for {asset.ticker}")


class MarketFeedRouter:
    """
    Chooses the provider for an asset's market class.

    Every market class must be routed; construction fails otherwise.
    """

    def __init__(self, feeds: Dict[MarketClass, PriceFeed]):
        missing = [m.value for m in MarketClass if m not in feeds]
        if missing:
            raise ValueError(f"No price feed for markets: {', '.join(missing)}")
        self.feeds = feeds

    @classmethod
    def default(cls, config: Optional[FeedSettings] = None) -> "MarketFeedRouter":
        config = config or FeedSettings()
        cryptonator = CryptonatorFeed(config)
        iex = IexFeed(config)
        fcs = FcsFeed(config)
        return cls({
            MarketClass.CRYPTO: cryptonator,
            MarketClass.STOCK: iex,
            MarketClass.COMMODITY: iex,
            MarketClass.FOREX: fcs,
            MarketClass.INDEX: fcs,
        })

    def feed_for(self, market: MarketClass) -> PriceFeed:
        return self.feeds[MarketClass(market)]

    async def fetch_price(self, asset: Asset, rules: TradingRules) -> str:
        return await self.feed_for(asset.market).fetch_price(asset, rules)

    async def close(self) -> None:
        for feed in set(self.feeds.values()):
            await feed.close()
