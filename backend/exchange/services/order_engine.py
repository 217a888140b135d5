"""
Order Engine
Exchange Trading Platform

Owns the trade state machine:

    pending --(rate crosses entry)--> open
    pending --(cancel)--------------> cancelled
    open    --(close, SL/TP hit)----> closed

Every transition runs in one transaction and is guarded by a status
compare-and-swap, so a trade settles at most once no matter how many
paths try to close it.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from exchange.core.clock import Clock
from exchange.core.events import EventBus, TradeEvent
from exchange.core.exceptions import (
    BusinessRuleError,
    ExchangeError,
    NotFoundError,
    ValidationError,
)
from exchange.db.models.accounts import HistoryKind, HistoryStatus, Member
from exchange.db.models.market import Asset
from exchange.db.models.trading import ForexFields, Trade, TradeKind, TradeSide, TradeStatus
from exchange.db.repositories.accounts import MemberRepository
from exchange.db.repositories.market import AssetRepository
from exchange.db.repositories.trading import TradeRepository
from exchange.db.session import Database
from exchange.services import pricing
from exchange.services.ledger import SettlementLedger
from exchange.services.settings_provider import SettingsProvider, TradingRules


def _enum_value(value: Any) -> str:
    """Lower-cased string value of an enum member or raw string."""
    if isinstance(value, Enum):
        value = value.value
    return str(value).lower()


class BulkCloseFilter(str, Enum):
    LOSING = "losing"
    WINNING = "winning"
    ALL = "all"


@dataclass
class OrderRequest:
    """Raw order placement input as received from a member."""
    member_id: int
    asset_id: int
    side: str
    kind: str
    qty: Any
    rate: Any = None
    stop_loss: Any = 0
    take_profit: Any = 0
    leverage: Any = 0


@dataclass
class BulkCloseResult:
    closed: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)


@dataclass(frozen=True)
class _ParsedOrder:
    side: TradeSide
    kind: TradeKind
    qty: Decimal
    member_rate: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    leverage: int


class OrderEngine:
    """
    Prices, opens, settles and closes member trades.

    Usage:
        engine = OrderEngine(database, event_bus, SettingsProvider())
        trade = await engine.price_and_open(OrderRequest(...))
        await engine.close(trade.id, member_id=trade.member_id)
    """

    def __init__(
        self,
        database: Database,
        event_bus: EventBus,
        settings_provider: Optional[SettingsProvider] = None,
        clock: Optional[Clock] = None,
    ):
        self.database = database
        self.event_bus = event_bus
        self.settings_provider = settings_provider or SettingsProvider()
        self.clock = clock or Clock()

    # =========================================================================
    # Validation
    # =========================================================================

    @staticmethod
    def _parse_request(request: OrderRequest) -> _ParsedOrder:
        try:
            side = TradeSide(_enum_value(request.side))
        except ValueError:
            raise ValidationError("INVALID_ACTION")
        try:
            kind = TradeKind(_enum_value(request.kind))
        except ValueError:
            raise ValidationError("INVALID_ORDER_TYPE")

        member_rate = Decimal("0")
        if kind == TradeKind.LIMIT:
            member_rate = pricing.parse_decimal(request.rate)
            if member_rate is None or member_rate <= 0:
                raise ValidationError("TRADE_INVALID_PRICE")

        qty = pricing.parse_decimal(request.qty)
        if qty is None or qty <= 0:
            raise ValidationError("INVALID_QTY")

        stop_loss = pricing.parse_decimal(request.stop_loss or 0)
        if stop_loss is None or stop_loss < 0:
            raise ValidationError("INVALID_STOP_LOSS")
        take_profit = pricing.parse_decimal(request.take_profit or 0)
        if take_profit is None or take_profit < 0:
            raise ValidationError("INVALID_TAKE_PROFIT")

        leverage = pricing.parse_decimal(request.leverage or 0)
        if leverage is None or leverage < 0 or leverage != leverage.to_integral_value():
            raise ValidationError("INVALID_LEVERAGE")

        return _ParsedOrder(
            side=side,
            kind=kind,
            qty=qty,
            member_rate=member_rate,
            stop_loss=stop_loss,
            take_profit=take_profit,
            leverage=int(leverage),
        )

    @staticmethod
    def _check_tradable(asset: Optional[Asset]) -> Asset:
        if asset is None:
            raise NotFoundError("INVALID_ASSET")
        if not asset.tradable or not asset.active or not asset.rate or asset.rate <= 0:
            raise BusinessRuleError("TRADE_ASSET_NOT_TRADABLE")
        return asset

    @staticmethod
    def resolve_leverage(requested: int, asset: Asset, member: Member, rules: TradingRules) -> int:
        """
        Effective leverage for a new trade.

        Forex always uses the market default. Elsewhere no request means
        1x, and a request may not exceed the asset (or market) cap nor the
        member's personal cap.
        """
        default = rules.leverage_for(asset.market)
        if asset.is_forex:
            return default
        if requested == 0:
            return 1

        allowed = asset.leverage_allowed or default
        if member.leverage_allowed and member.leverage_allowed < allowed:
            allowed = member.leverage_allowed
        if requested > allowed:
            raise BusinessRuleError("INVALID_LEVERAGE")
        return requested

    @staticmethod
    def _check_protection_allowance(order: _ParsedOrder, member: Member, rules: TradingRules) -> None:
        """Member SL/TP may not exceed the tighter of member and system ceilings."""

        def ceiling(member_value: Decimal, system_value: Decimal) -> Optional[Decimal]:
            values = [v for v in (member_value, system_value) if v]
            return min(values) if values else None

        stop_ceiling = ceiling(member.stop_loss_allowed, rules.stop_loss_allowed)
        if order.stop_loss and stop_ceiling is not None and order.stop_loss > stop_ceiling:
            raise ValidationError("INVALID_STOP_LOSS")

        profit_ceiling = ceiling(member.take_profit_allowed, rules.take_profit_allowed)
        if order.take_profit and profit_ceiling is not None and order.take_profit > profit_ceiling:
            raise ValidationError("INVALID_TAKE_PROFIT")

    @staticmethod
    def initial_status(kind: TradeKind, side: TradeSide, rate_entry: Decimal, market_rate: Decimal) -> TradeStatus:
        """
        Market orders open immediately. A limit order waits while the
        market has not yet reached its price.
        """
        if kind == TradeKind.LIMIT:
            if side == TradeSide.BUY and rate_entry < market_rate:
                return TradeStatus.PENDING
            if side == TradeSide.SELL and rate_entry > market_rate:
                return TradeStatus.PENDING
        return TradeStatus.OPEN

    @staticmethod
    def _check_limit_deviation(side: TradeSide, rate_entry: Decimal, market_rate: Decimal, rules: TradingRules) -> None:
        """Reject limit prices far enough from market to lock in a large swing."""
        deviation = pricing.limit_deviation(rate_entry, market_rate)
        if side == TradeSide.BUY:
            losing, winning = deviation > 0, deviation < 0
        else:
            losing, winning = deviation < 0, deviation > 0

        if losing and rules.stop_loss_protection and abs(deviation) > rules.stop_loss_protection:
            raise BusinessRuleError("MAX_STOP_LOSS")
        if winning and rules.take_profit_protection and abs(deviation) > rules.take_profit_protection:
            raise BusinessRuleError("MAX_TAKE_PROFIT")

    # =========================================================================
    # Open
    # =========================================================================

    async def price_and_open(self, request: OrderRequest) -> Trade:
        """
        Validate, price and open a trade.

        The balance check, debit, trade insert, wallet credit and History
        row commit together. Live profit is computed right after.
        """
        order = self._parse_request(request)

        async with self.database.transaction() as session:
            rules = await self.settings_provider.load(session)
            asset = self._check_tradable(await AssetRepository(session).get(request.asset_id))
            member = await MemberRepository(session).get(request.member_id)
            if member is None or not member.active:
                raise NotFoundError("INVALID_MEMBER")

            self._check_protection_allowance(order, member, rules)

            market_rate = asset.rate_buy if order.side == TradeSide.BUY else asset.rate_sell
            if not market_rate or market_rate <= 0:
                raise BusinessRuleError("TRADE_ASSET_NOT_TRADABLE")
            rate_entry = market_rate if order.kind == TradeKind.MARKET else order.member_rate

            leverage = self.resolve_leverage(order.leverage, asset, member, rules)
            total_real, total = pricing.order_totals(
                asset.market, order.qty, rate_entry, leverage, rules.forex_lot_size
            )
            forex = ForexFields()
            if asset.is_forex:
                forex = pricing.forex_entry(rate_entry, total_real, asset.pip_decimals)

            ledger = SettlementLedger(session, self.clock)
            balance = await ledger.lock_balance(member.id, asset.currency)
            if total > balance.amount:
                raise BusinessRuleError("TRADE_INSUFFICIENT_WALLET")

            status = self.initial_status(order.kind, order.side, rate_entry, market_rate)
            if order.kind == TradeKind.LIMIT:
                self._check_limit_deviation(order.side, rate_entry, market_rate, rules)

            trade = Trade(
                member_id=member.id,
                asset_id=asset.id,
                kind=order.kind,
                side=order.side,
                status=status,
                currency=asset.currency,
                member_rate=order.member_rate,
                market_rate=asset.rate,
                rate_entry=rate_entry,
                qty=order.qty,
                leverage=leverage,
                total_real=total_real,
                total=total,
                balance_entry=balance.amount,
                stop_loss=order.stop_loss,
                take_profit=order.take_profit,
                created_at=self.clock.now(),
            )
            trade.apply_forex(forex)
            await TradeRepository(session).add(trade)

            await ledger.post(
                balance,
                -total,
                kind=HistoryKind.TRADE,
                status=HistoryStatus.OPEN,
                asset_id=asset.id,
                trade_id=trade.id,
                side=order.side.value,
                qty=order.qty,
                rate=rate_entry,
                leverage=leverage,
            )
            if order.side == TradeSide.BUY and status == TradeStatus.OPEN:
                await ledger.adjust_wallet(member.id, asset.id, order.qty)

        logger.info(
            f"Trade {trade.id} {status.value}: member={trade.member_id} {order.side.value} "
            f"{order.qty} {asset.ticker} @ {rate_entry} x{leverage} total={total}"
        )

        refreshed = await self.calculate_profit(trade.id)
        return refreshed or trade

    # =========================================================================
    # Profit
    # =========================================================================

    async def calculate_profit(self, trade_id: int) -> Optional[Trade]:
        """Recompute and persist live profit. Pending and closed trades are left alone."""
        async with self.database.transaction() as session:
            trade = await TradeRepository(session).get(trade_id, for_update=True)
            if trade is None:
                return None
            if trade.status != TradeStatus.OPEN:
                return trade
            asset = await AssetRepository(session).get(trade.asset_id)
            rules = await self.settings_provider.load(session)
            pricing.apply_profit(trade, pricing.calculate_profit(trade, asset, rules.forex_usd_pip_value))
            return trade

    @staticmethod
    def sltp_triggered(trade: Trade, rules: TradingRules) -> bool:
        """
        True if the trade's gain has reached its stop loss (while losing)
        or take profit (while winning). Unset values fall back to the
        system protection.
        """
        if not trade.profit_abs:
            return False

        stop_loss = trade.stop_loss or rules.stop_loss_protection
        take_profit = trade.take_profit or rules.take_profit_protection
        gain = abs(trade.gain)

        if stop_loss and trade.profit_negative and gain >= stop_loss:
            return True
        if take_profit and not trade.profit_negative and gain >= take_profit:
            return True
        return False

    async def close_sltp(self, trade_id: int) -> bool:
        """Close the trade if its SL/TP threshold is met. Returns True if it closed."""
        async with self.database.transaction() as session:
            trade = await TradeRepository(session).get(trade_id, for_update=True)
            if trade is None or trade.status != TradeStatus.OPEN:
                return False
            closed = await self._evaluate_open(session, trade)

        if closed:
            await self._notify(trade, "closed")
        return closed

    async def _evaluate_open(self, session: AsyncSession, trade: Trade) -> bool:
        asset = await AssetRepository(session).get(trade.asset_id)
        rules = await self.settings_provider.load(session)
        pricing.apply_profit(trade, pricing.calculate_profit(trade, asset, rules.forex_usd_pip_value))

        if not self.sltp_triggered(trade, rules):
            return False
        closed = await self._settle_close(session, trade, asset, rules, by_system=True)
        if closed:
            logger.info(f"Trade {trade.id} closed by system: gain={trade.gain} profit={trade.profit}")
        return closed

    # =========================================================================
    # Close
    # =========================================================================

    async def close(self, trade_id: int, member_id: Optional[int] = None, by_system: bool = False) -> Trade:
        """
        Close an open trade or cancel a pending one.

        Terminal trades are returned unchanged.
        """
        async with self.database.transaction() as session:
            trades = TradeRepository(session)
            trade = await trades.get(trade_id, for_update=True)
            if trade is None or (member_id is not None and trade.member_id != member_id):
                raise NotFoundError("INVALID_TRADE")
            if trade.status.is_terminal:
                return trade

            if trade.status == TradeStatus.PENDING:
                settled = await self._settle_cancel(session, trade)
            else:
                asset = await AssetRepository(session).get(trade.asset_id)
                rules = await self.settings_provider.load(session)
                settled = await self._settle_close(session, trade, asset, rules, by_system=by_system)

        if settled:
            logger.info(f"Trade {trade.id} {trade.status.value}: profit={trade.profit}")
            await self._notify(trade, trade.status.value)
        return trade

    async def _settle_close(
        self,
        session: AsyncSession,
        trade: Trade,
        asset: Asset,
        rules: TradingRules,
        by_system: bool,
    ) -> bool:
        if not await TradeRepository(session).transition(trade, TradeStatus.OPEN, TradeStatus.CLOSED):
            return False

        snapshot = pricing.calculate_profit(trade, asset, rules.forex_usd_pip_value)
        pricing.apply_profit(trade, snapshot)
        payout = trade.total + trade.profit

        ledger = SettlementLedger(session, self.clock)
        balance = await ledger.lock_balance(trade.member_id, trade.currency)
        await ledger.post(
            balance,
            payout,
            kind=HistoryKind.TRADE,
            status=HistoryStatus.CLOSED,
            asset_id=trade.asset_id,
            trade_id=trade.id,
            side=trade.side.value,
            qty=trade.qty,
            rate=snapshot.rate_closed,
            leverage=trade.leverage,
            profit=trade.profit,
        )
        if trade.is_buy:
            await ledger.adjust_wallet(trade.member_id, trade.asset_id, -trade.qty)

        trade.rate_closed = snapshot.rate_closed
        trade.balance_closed = balance.amount
        trade.closed_by_system = by_system
        trade.closed_at = self.clock.now()
        return True

    async def _settle_cancel(self, session: AsyncSession, trade: Trade) -> bool:
        if not await TradeRepository(session).transition(trade, TradeStatus.PENDING, TradeStatus.CANCELLED):
            return False

        ledger = SettlementLedger(session, self.clock)
        balance = await ledger.lock_balance(trade.member_id, trade.currency)
        await ledger.post(
            balance,
            trade.total,
            kind=HistoryKind.TRADE,
            status=HistoryStatus.CANCELLED,
            asset_id=trade.asset_id,
            trade_id=trade.id,
            side=trade.side.value,
            qty=trade.qty,
            rate=trade.rate_entry,
            leverage=trade.leverage,
        )

        trade.profit = Decimal("0")
        trade.profit_abs = Decimal("0")
        trade.profit_negative = False
        trade.balance_closed = balance.amount
        trade.closed_at = self.clock.now()
        return True

    async def close_bulk(self, member_id: int, filter: BulkCloseFilter) -> BulkCloseResult:
        """
        Close a member's losing, winning or all live trades.

        Each trade settles in its own transaction; one failure does not
        stop the rest.
        """
        filter = BulkCloseFilter(filter)
        statuses = [TradeStatus.OPEN]
        if filter == BulkCloseFilter.ALL:
            statuses.append(TradeStatus.PENDING)

        async with self.database.session() as session:
            candidates = await TradeRepository(session).for_member(member_id, statuses)

        # Decimal columns compare here rather than in SQL
        if filter == BulkCloseFilter.LOSING:
            candidates = [t for t in candidates if t.profit < 0]
        elif filter == BulkCloseFilter.WINNING:
            candidates = [t for t in candidates if t.profit > 0]

        result = BulkCloseResult()
        for candidate in candidates:
            try:
                await self.close(candidate.id, member_id=member_id)
                result.closed.append(candidate.id)
            except ExchangeError as e:
                logger.warning(f"Bulk close: trade {candidate.id} failed: {e.code}")
                result.failed[candidate.id] = e.code
            except Exception as e:
                logger.exception(f"Bulk close: trade {candidate.id} crashed: {e}")
                result.failed[candidate.id] = "INTERNAL_ERROR"

        logger.info(
            f"Bulk close ({filter.value}) member={member_id}: "
            f"{len(result.closed)} closed, {len(result.failed)} failed"
        )
        return result

    # =========================================================================
    # Rate tick reactions
    # =========================================================================

    @staticmethod
    def should_activate(trade: Trade, rate: Decimal) -> bool:
        """A buy limit fills once the rate falls to its price; a sell once it rises."""
        if trade.is_buy:
            return trade.rate_entry >= rate
        return trade.rate_entry <= rate

    async def activate_pending(self, asset: Asset) -> List[int]:
        """Open every pending limit trade on `asset` that the current rate fills."""
        async with self.database.session() as session:
            candidates = await TradeRepository(session).pending_limits(asset.id)

        activated = []
        for candidate in candidates:
            if not self.should_activate(candidate, asset.rate):
                continue
            try:
                async with self.database.transaction() as session:
                    trades = TradeRepository(session)
                    trade = await trades.get(candidate.id, for_update=True)
                    opened = trade is not None and await trades.transition(
                        trade, TradeStatus.PENDING, TradeStatus.OPEN
                    )
                    if opened and trade.is_buy:
                        ledger = SettlementLedger(session, self.clock)
                        await ledger.adjust_wallet(trade.member_id, trade.asset_id, trade.qty)
            except ExchangeError as e:
                logger.error(f"Activation of trade {candidate.id} failed: {e.code}")
                continue
            except Exception as e:
                logger.exception(f"Activation of trade {candidate.id} crashed: {e}")
                continue

            if opened:
                activated.append(trade.id)
                logger.info(f"Trade {trade.id} activated at {asset.ticker} {asset.rate}")
                await self._notify(trade, "limit")

        return activated

    async def refresh_open_orders(self, asset: Asset) -> List[int]:
        """
        Recompute profit for every live trade on `asset` and auto-close the
        ones past their SL/TP. Returns IDs of trades closed.
        """
        async with self.database.session() as session:
            candidates = await TradeRepository(session).for_asset(
                asset.id, [TradeStatus.PENDING, TradeStatus.OPEN]
            )

        closed = []
        for candidate in candidates:
            if candidate.status != TradeStatus.OPEN:
                continue
            try:
                async with self.database.transaction() as session:
                    trade = await TradeRepository(session).get(candidate.id, for_update=True)
                    hit = (
                        trade is not None
                        and trade.status == TradeStatus.OPEN
                        and await self._evaluate_open(session, trade)
                    )
            except ExchangeError as e:
                logger.error(f"Refresh of trade {candidate.id} failed: {e.code}")
                continue
            except Exception as e:
                logger.exception(f"Refresh of trade {candidate.id} crashed: {e}")
                continue

            if hit:
                closed.append(trade.id)
                await self._notify(trade, "closed")

        return closed

    async def _notify(self, trade: Trade, value: str) -> None:
        await self.event_bus.publish(TradeEvent(member_id=trade.member_id, trade_id=trade.id, value=value))


__all__ = [
    "BulkCloseFilter",
    "BulkCloseResult",
    "OrderRequest",
    "OrderEngine",
]
