"""
Domain Models - Member Accounts
Exchange Trading Platform

SQLAlchemy models for:
- Members and their personal trading limits
- Currency balances
- Asset wallets
- The append-only money history
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from exchange.db.base import Base
from exchange.db.models.market import enum_column
from exchange.db.types import DecimalType


class HistoryKind(str, Enum):
    TRADE = "trade"
    BALANCE = "balance"


class HistoryStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class Member(Base):
    """
    Trading account holder.

    Zero in any limit column means "no member-specific value".
    """
    __tablename__ = "member"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    leverage_allowed: Mapped[int] = mapped_column(Integer, default=0)
    stop_loss_allowed: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    take_profit_allowed: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Balance(Base):
    """Cash held by a member in one currency."""
    __tablename__ = "balance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(Integer, ForeignKey("member.id"), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    amount: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint('member_id', 'currency', name='uq_balance_member_currency'),
    )


class Wallet(Base):
    """Asset quantity held by a member."""
    __tablename__ = "wallet"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(Integer, ForeignKey("member.id"), nullable=False)
    asset_id: Mapped[int] = mapped_column(Integer, ForeignKey("asset.id"), nullable=False)
    balance: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint('member_id', 'asset_id', name='uq_wallet_member_asset'),
    )


class History(Base):
    """
    One balance movement.

    Rows are only ever appended. `amount` is the signed change applied to
    the balance; `profit` is the realised result of a close.
    """
    __tablename__ = "history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(Integer, ForeignKey("member.id"), nullable=False)
    asset_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("asset.id"))
    trade_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("trade.id"))
    kind: Mapped[HistoryKind] = mapped_column(enum_column(HistoryKind), nullable=False)
    side: Mapped[Optional[str]] = mapped_column(String(8))  # buy, sell
    status: Mapped[HistoryStatus] = mapped_column(enum_column(HistoryStatus), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)

    qty: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    rate: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    leverage: Mapped[int] = mapped_column(Integer, default=1)

    amount: Mapped[Decimal] = mapped_column(DecimalType(), nullable=False)
    amount_abs: Mapped[Decimal] = mapped_column(DecimalType(), nullable=False)
    amount_negative: Mapped[bool] = mapped_column(Boolean, default=False)
    profit: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_history_member', 'member_id', 'created_at'),
        Index('idx_history_trade', 'trade_id'),
    )
