"""
Alerts Repository
Exchange Trading Platform
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exchange.db.models.alerts import Alert, AlertStatus
from exchange.db.repository import BaseRepository


class AlertRepository(BaseRepository[Alert]):
    """Repository for price alerts."""

    def __init__(self, session: AsyncSession):
        super().__init__(Alert, session)

    async def active_for_asset(self, asset_id: int) -> List[Alert]:
        result = await self.session.execute(
            select(Alert)
            .where(Alert.asset_id == asset_id, Alert.status == AlertStatus.ACTIVE)
            .order_by(Alert.id)
        )
        return list(result.scalars().all())

    async def unseen_fired(self, member_id: int) -> List[Alert]:
        result = await self.session.execute(
            select(Alert)
            .where(
                Alert.member_id == member_id,
                Alert.status == AlertStatus.FIRED,
                Alert.seen_at.is_(None),
            )
            .order_by(Alert.id)
        )
        return list(result.scalars().all())
