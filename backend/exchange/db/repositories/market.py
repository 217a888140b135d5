"""
Market Data Repository
Exchange Trading Platform

Data access for assets and their rate samples.
"""

from typing import Dict, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from exchange.db.models.market import Asset, MarketClass, RateSample
from exchange.db.repository import BaseRepository, TimeSeriesRepository


class AssetRepository(BaseRepository[Asset]):
    """Repository for assets."""

    def __init__(self, session: AsyncSession):
        super().__init__(Asset, session)

    async def get_due(self, now: int, intervals: Dict[MarketClass, int]) -> List[Asset]:
        """
        Tradable, active assets whose rate is older than their market's
        update interval, stalest first.
        """
        per_market = [
            and_(Asset.market == market, Asset.updated < now - interval)
            for market, interval in intervals.items()
        ]
        result = await self.session.execute(
            select(Asset)
            .where(
                Asset.tradable == True,  # noqa: E712
                Asset.active == True,  # noqa: E712
                or_(*per_market),
            )
            .order_by(Asset.updated, Asset.id)
        )
        return list(result.scalars().all())


class RateSampleRepository(TimeSeriesRepository[RateSample]):
    """Repository for rate samples."""

    def __init__(self, session: AsyncSession):
        super().__init__(RateSample, session, time_column="timestamp")

    async def exists_after(self, asset_id: int, after: int) -> bool:
        """True if the asset has a sample newer than `after`."""
        result = await self.session.execute(
            select(RateSample.id)
            .where(RateSample.asset_id == asset_id, RateSample.timestamp > after)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def first_after(self, asset_id: int, after: int) -> Optional[RateSample]:
        """Oldest sample newer than `after`."""
        result = await self.session.execute(
            select(RateSample)
            .where(RateSample.asset_id == asset_id, RateSample.timestamp > after)
            .order_by(RateSample.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def for_asset(self, asset_id: int, since: int) -> List[RateSample]:
        """Samples for charting, oldest first."""
        return await self.get_range(since, filters={"asset_id": asset_id})
