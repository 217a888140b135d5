"""
Settlement Ledger
Exchange Trading Platform

Every change to a member's cash balance goes through SettlementLedger and
is paired, inside the caller's transaction, with an appended History row.
Wallet (asset quantity) changes ride along with the trade transition that
causes them.

FundsService adds the operator deposit and withdrawal flows on top.
"""

from decimal import Decimal
from typing import List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from exchange.core.clock import Clock
from exchange.core.exceptions import BusinessRuleError, NotFoundError, ValidationError
from exchange.db.models.accounts import Balance, History, HistoryKind, HistoryStatus, Wallet
from exchange.db.repositories.accounts import (
    BalanceRepository,
    HistoryRepository,
    MemberRepository,
    WalletRepository,
)
from exchange.db.session import Database
from exchange.services.pricing import parse_decimal


class SettlementLedger:
    """
    Balance and wallet mutations for one unit of work.

    The ledger never commits; it is built around the session of the
    transaction that also changes the trade or deposit row.
    """

    def __init__(self, session: AsyncSession, clock: Clock):
        self.session = session
        self.clock = clock
        self.balances = BalanceRepository(session)
        self.wallets = WalletRepository(session)
        self.history = HistoryRepository(session)

    async def lock_balance(self, member_id: int, currency: str) -> Balance:
        """Row-lock the member's balance in `currency`."""
        return await self.balances.lock(member_id, currency)

    async def adjust_wallet(self, member_id: int, asset_id: int, delta: Decimal) -> Wallet:
        wallet = await self.wallets.lock(member_id, asset_id)
        wallet.balance = wallet.balance + delta
        return wallet

    async def post(
        self,
        balance: Balance,
        amount: Decimal,
        *,
        kind: HistoryKind,
        status: HistoryStatus,
        asset_id: Optional[int] = None,
        trade_id: Optional[int] = None,
        side: Optional[str] = None,
        qty: Decimal = Decimal("0"),
        rate: Decimal = Decimal("0"),
        leverage: int = 1,
        profit: Decimal = Decimal("0"),
    ) -> History:
        """
        Apply a signed `amount` to `balance` and append its History row.

        Negative amounts are debits.
        """
        balance.amount = balance.amount + amount
        entry = History(
            member_id=balance.member_id,
            asset_id=asset_id,
            trade_id=trade_id,
            kind=kind,
            side=side,
            status=status,
            currency=balance.currency,
            qty=qty,
            rate=rate,
            leverage=leverage,
            amount=amount,
            amount_abs=abs(amount),
            amount_negative=amount < 0,
            profit=profit,
            created_at=self.clock.now(),
        )
        await self.history.append(entry)
        return entry


class FundsService:
    """Operator deposits and withdrawals."""

    def __init__(self, database: Database, clock: Optional[Clock] = None):
        self.database = database
        self.clock = clock or Clock()

    @staticmethod
    def _amount(value) -> Decimal:
        amount = parse_decimal(value)
        if amount is None or amount <= 0:
            raise ValidationError("INVALID_AMOUNT")
        return amount

    async def deposit(self, member_id: int, currency: str, amount) -> Balance:
        """Credit a completed deposit."""
        amount = self._amount(amount)
        async with self.database.transaction() as session:
            if await MemberRepository(session).get(member_id) is None:
                raise NotFoundError("INVALID_MEMBER")
            ledger = SettlementLedger(session, self.clock)
            balance = await ledger.lock_balance(member_id, currency)
            await ledger.post(balance, amount, kind=HistoryKind.BALANCE, status=HistoryStatus.DEPOSIT)

        logger.info(f"Deposit: member={member_id} {amount} {currency}")
        return balance

    async def withdraw(self, member_id: int, currency: str, amount) -> Balance:
        """Debit a withdrawal; the balance may not go negative."""
        amount = self._amount(amount)
        async with self.database.transaction() as session:
            if await MemberRepository(session).get(member_id) is None:
                raise NotFoundError("INVALID_MEMBER")
            ledger = SettlementLedger(session, self.clock)
            balance = await ledger.lock_balance(member_id, currency)
            if amount > balance.amount:
                raise BusinessRuleError("INSUFFICIENT_BALANCE")
            await ledger.post(balance, -amount, kind=HistoryKind.BALANCE, status=HistoryStatus.WITHDRAWAL)

        logger.info(f"Withdrawal: member={member_id} {amount} {currency}")
        return balance

    async def balance(self, member_id: int, currency: str) -> Decimal:
        async with self.database.session() as session:
            row = await BalanceRepository(session).find(member_id, currency)
            return row.amount if row else Decimal("0")

    async def wallet(self, member_id: int, asset_id: int) -> Decimal:
        async with self.database.session() as session:
            row = await WalletRepository(session).find(member_id, asset_id)
            return row.balance if row else Decimal("0")

    async def history(self, member_id: int) -> List[History]:
        async with self.database.session() as session:
            return await HistoryRepository(session).for_member(member_id)
