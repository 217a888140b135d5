"""
Settings Repository
Exchange Trading Platform
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from exchange.db.models.settings import SETTINGS_ROW_ID, SystemSettings
from exchange.db.repository import BaseRepository


class SettingsRepository(BaseRepository[SystemSettings]):
    """Repository for the single system settings row."""

    def __init__(self, session: AsyncSession):
        super().__init__(SystemSettings, session)

    async def current(self) -> Optional[SystemSettings]:
        return await self.get(SETTINGS_ROW_ID)
