"""
Domain Models - Trading
Exchange Trading Platform

SQLAlchemy model for member trades and the forex pip fields that travel
with them.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from exchange.db.base import Base
from exchange.db.models.market import enum_column
from exchange.db.types import DecimalType


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class TradeKind(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class TradeStatus(str, Enum):
    """
    Lifecycle:
        pending -> open -> closed
        pending -> cancelled
    """
    PENDING = "pending"
    OPEN = "open"
    CLOSED = "closed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TradeStatus.CLOSED, TradeStatus.CANCELLED)


@dataclass(frozen=True)
class ForexFields:
    """Pip bookkeeping for forex trades; all zero elsewhere."""
    one_pip: Decimal = Decimal("0")
    pips_rate_entry: Decimal = Decimal("0")
    pips_rate_closed: Decimal = Decimal("0")
    pip_value: Decimal = Decimal("0")
    forex_amount: Decimal = Decimal("0")  # lots


class Trade(Base):
    """
    A member's position, from placement to settlement.

    `total` is the cash reserved from the balance at open. Profit fields
    are refreshed on every rate tick while the trade is live.
    """
    __tablename__ = "trade"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(Integer, ForeignKey("member.id"), nullable=False)
    asset_id: Mapped[int] = mapped_column(Integer, ForeignKey("asset.id"), nullable=False)

    kind: Mapped[TradeKind] = mapped_column(enum_column(TradeKind), nullable=False)
    side: Mapped[TradeSide] = mapped_column(enum_column(TradeSide), nullable=False)
    status: Mapped[TradeStatus] = mapped_column(enum_column(TradeStatus), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)

    # Rates
    member_rate: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))  # limit price as entered
    market_rate: Mapped[Decimal] = mapped_column(DecimalType(), nullable=False)  # mid rate at placement
    rate_entry: Mapped[Decimal] = mapped_column(DecimalType(), nullable=False)
    rate_closed: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))

    # Size
    qty: Mapped[Decimal] = mapped_column(DecimalType(), nullable=False)
    leverage: Mapped[int] = mapped_column(Integer, default=1)
    total_real: Mapped[Decimal] = mapped_column(DecimalType(), nullable=False)
    total: Mapped[Decimal] = mapped_column(DecimalType(), nullable=False)
    balance_entry: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    balance_closed: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))

    # Protection, % of gain; 0 = system default
    stop_loss: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    take_profit: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))

    # Live result
    profit: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    profit_abs: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    profit_negative: Mapped[bool] = mapped_column(Boolean, default=False)
    gain: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))

    # Forex
    one_pip: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    pips_rate_entry: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    pips_rate_closed: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    pip_value: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    forex_amount: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))

    closed_by_system: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index('idx_trade_member_status', 'member_id', 'status'),
        Index('idx_trade_asset_status', 'asset_id', 'status'),
    )

    @property
    def forex(self) -> ForexFields:
        return ForexFields(
            one_pip=self.one_pip,
            pips_rate_entry=self.pips_rate_entry,
            pips_rate_closed=self.pips_rate_closed,
            pip_value=self.pip_value,
            forex_amount=self.forex_amount,
        )

    def apply_forex(self, fields: ForexFields) -> None:
        self.one_pip = fields.one_pip
        self.pips_rate_entry = fields.pips_rate_entry
        self.pips_rate_closed = fields.pips_rate_closed
        self.pip_value = fields.pip_value
        self.forex_amount = fields.forex_amount

    @property
    def is_buy(self) -> bool:
        return self.side == TradeSide.BUY

    def __repr__(self) -> str:
        return f"<Trade {self.id} {self.side} {self.qty} status={self.status}>"
