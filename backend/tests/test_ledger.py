"""
Tests for the settlement ledger and operator funds flows.
"""

import pytest
from decimal import Decimal

from exchange.core.exceptions import BusinessRuleError, NotFoundError, ValidationError
from exchange.db.models import HistoryKind, HistoryStatus
from exchange.services.ledger import SettlementLedger


pytestmark = pytest.mark.integration


class TestFunds:
    """Tests for deposit and withdraw."""

    @pytest.mark.asyncio
    async def test_deposit(self, funds, seed):
        balance = await funds.deposit(seed.member.id, "USD", "500")

        assert balance.amount == Decimal("1500")
        history = await funds.history(seed.member.id)
        assert len(history) == 1
        assert history[0].kind == HistoryKind.BALANCE
        assert history[0].status == HistoryStatus.DEPOSIT
        assert history[0].amount == Decimal("500")
        assert history[0].amount_negative is False

    @pytest.mark.asyncio
    async def test_deposit_opens_new_currency(self, funds, seed):
        await funds.deposit(seed.member.id, "EUR", "25.50")
        assert await funds.balance(seed.member.id, "EUR") == Decimal("25.50")
        assert await funds.balance(seed.member.id, "USD") == Decimal("1000")

    @pytest.mark.asyncio
    async def test_withdraw(self, funds, seed):
        balance = await funds.withdraw(seed.member.id, "USD", "200")

        assert balance.amount == Decimal("800")
        history = await funds.history(seed.member.id)
        assert history[0].status == HistoryStatus.WITHDRAWAL
        assert history[0].amount == Decimal("-200")
        assert history[0].amount_abs == Decimal("200")

    @pytest.mark.asyncio
    async def test_withdraw_more_than_balance(self, funds, seed):
        with pytest.raises(BusinessRuleError) as exc:
            await funds.withdraw(seed.member.id, "USD", "1000.01")
        assert exc.value.code == "INSUFFICIENT_BALANCE"
        assert await funds.balance(seed.member.id, "USD") == Decimal("1000")
        assert await funds.history(seed.member.id) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-10", "ten", None])
    async def test_invalid_amount(self, funds, seed, amount):
        with pytest.raises(ValidationError) as exc:
            await funds.deposit(seed.member.id, "USD", amount)
        assert exc.value.code == "INVALID_AMOUNT"

    @pytest.mark.asyncio
    async def test_unknown_member(self, funds, seed):
        with pytest.raises(NotFoundError) as exc:
            await funds.deposit(9999, "USD", "10")
        assert exc.value.code == "INVALID_MEMBER"


class TestSettlementLedger:
    """Tests for SettlementLedger inside a caller's transaction."""

    @pytest.mark.asyncio
    async def test_post_and_wallet(self, database, funds, clock, seed):
        async with database.transaction() as session:
            ledger = SettlementLedger(session, clock)
            balance = await ledger.lock_balance(seed.member.id, "USD")
            entry = await ledger.post(
                balance,
                Decimal("-40"),
                kind=HistoryKind.TRADE,
                status=HistoryStatus.OPEN,
                asset_id=seed.stock.id,
            )
            wallet = await ledger.adjust_wallet(seed.member.id, seed.stock.id, Decimal("3"))

        assert entry.id is not None
        assert entry.created_at == clock.now()
        assert wallet.balance == Decimal("3")
        assert await funds.balance(seed.member.id, "USD") == Decimal("960")
        assert await funds.wallet(seed.member.id, seed.stock.id) == Decimal("3")

    @pytest.mark.asyncio
    async def test_rollback_discards_both(self, database, funds, clock, seed):
        with pytest.raises(BusinessRuleError):
            async with database.transaction() as session:
                ledger = SettlementLedger(session, clock)
                balance = await ledger.lock_balance(seed.member.id, "USD")
                await ledger.post(balance, Decimal("-40"), kind=HistoryKind.TRADE, status=HistoryStatus.OPEN)
                raise BusinessRuleError("TRADE_INSUFFICIENT_WALLET")

        assert await funds.balance(seed.member.id, "USD") == Decimal("1000")
        assert await funds.history(seed.member.id) == []
