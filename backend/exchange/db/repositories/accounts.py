"""
Accounts Repository
Exchange Trading Platform

Data access for members, balances, wallets and the money history.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exchange.db.models.accounts import Balance, History, Member, Wallet
from exchange.db.repository import BaseRepository


class MemberRepository(BaseRepository[Member]):
    """Repository for members."""

    def __init__(self, session: AsyncSession):
        super().__init__(Member, session)


class BalanceRepository(BaseRepository[Balance]):
    """Repository for currency balances."""

    def __init__(self, session: AsyncSession):
        super().__init__(Balance, session)

    async def find(self, member_id: int, currency: str, *, for_update: bool = False) -> Optional[Balance]:
        query = select(Balance).where(Balance.member_id == member_id, Balance.currency == currency)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def lock(self, member_id: int, currency: str) -> Balance:
        """Lock the balance row, creating it at zero if missing."""
        balance = await self.find(member_id, currency, for_update=True)
        if balance is None:
            balance = await self.add(Balance(member_id=member_id, currency=currency, amount=Decimal("0")))
        return balance


class WalletRepository(BaseRepository[Wallet]):
    """Repository for asset wallets."""

    def __init__(self, session: AsyncSession):
        super().__init__(Wallet, session)

    async def find(self, member_id: int, asset_id: int, *, for_update: bool = False) -> Optional[Wallet]:
        query = select(Wallet).where(Wallet.member_id == member_id, Wallet.asset_id == asset_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def lock(self, member_id: int, asset_id: int) -> Wallet:
        """Lock the wallet row, creating it empty if missing."""
        wallet = await self.find(member_id, asset_id, for_update=True)
        if wallet is None:
            wallet = await self.add(Wallet(member_id=member_id, asset_id=asset_id, balance=Decimal("0")))
        return wallet


class HistoryRepository(BaseRepository[History]):
    """
    Repository for the money history.

    Append and read only.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(History, session)

    async def append(self, entry: History) -> History:
        return await self.add(entry)

    async def for_member(self, member_id: int) -> List[History]:
        return await self.get_all(filters={"member_id": member_id})

    async def for_trade(self, trade_id: int) -> List[History]:
        return await self.get_all(filters={"trade_id": trade_id})
