"""
Trading Repository
Exchange Trading Platform

Data access layer for trades, including the status compare-and-swap that
keeps settlement to at most once per trade.
"""

from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from exchange.db.models.trading import Trade, TradeKind, TradeStatus
from exchange.db.repository import BaseRepository


class TradeRepository(BaseRepository[Trade]):
    """Repository for trades."""

    def __init__(self, session: AsyncSession):
        super().__init__(Trade, session)

    async def for_asset(self, asset_id: int, statuses: Iterable[TradeStatus]) -> List[Trade]:
        """Trades on an asset in any of `statuses`, oldest first."""
        result = await self.session.execute(
            select(Trade)
            .where(Trade.asset_id == asset_id, Trade.status.in_(list(statuses)))
            .order_by(Trade.id)
        )
        return list(result.scalars().all())

    async def for_member(
        self,
        member_id: int,
        statuses: Optional[Iterable[TradeStatus]] = None,
    ) -> List[Trade]:
        """A member's trades, optionally filtered by status."""
        query = select(Trade).where(Trade.member_id == member_id)
        if statuses is not None:
            query = query.where(Trade.status.in_(list(statuses)))
        result = await self.session.execute(query.order_by(Trade.id))
        return list(result.scalars().all())

    async def pending_limits(self, asset_id: int) -> List[Trade]:
        result = await self.session.execute(
            select(Trade)
            .where(
                Trade.asset_id == asset_id,
                Trade.kind == TradeKind.LIMIT,
                Trade.status == TradeStatus.PENDING,
            )
            .order_by(Trade.id)
        )
        return list(result.scalars().all())

    async def transition(self, trade: Trade, expected: TradeStatus, target: TradeStatus) -> bool:
        """
        Move `trade` from `expected` to `target` only if nobody else has.

        Returns:
            True if this call made the transition
        """
        result = await self.session.execute(
            update(Trade)
            .where(Trade.id == trade.id, Trade.status == expected)
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        trade.status = target
        return True
