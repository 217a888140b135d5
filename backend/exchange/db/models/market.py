"""
Domain Models - Market Data
Exchange Trading Platform

SQLAlchemy models for:
- Assets and their live quote
- Rate samples used for the 24h change and charts
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, Boolean, Enum as SAEnum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from exchange.db.base import Base
from exchange.db.types import DecimalType


class MarketClass(str, Enum):
    """Market an asset trades in."""
    CRYPTO = "crypto"
    STOCK = "stock"
    FOREX = "forex"
    COMMODITY = "commodity"
    INDEX = "index"

    @classmethod
    def from_market_id(cls, market_id: int) -> "MarketClass":
        """Map a legacy numeric market code."""
        try:
            return _LEGACY_MARKET_IDS[int(market_id)]
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Unknown market id: {market_id!r}")


_LEGACY_MARKET_IDS = {
    1: MarketClass.CRYPTO,
    2: MarketClass.STOCK,
    3: MarketClass.FOREX,
    4: MarketClass.STOCK,
    5: MarketClass.COMMODITY,
    6: MarketClass.STOCK,
    7: MarketClass.INDEX,
}


def enum_column(enum_cls, length: int = 16) -> SAEnum:
    """Store a str enum by value in a plain VARCHAR."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
    )


class Asset(Base):
    """
    A tradable instrument and its current quote.

    `rate` is the mid price, `rate_buy`/`rate_sell` include the spread.
    """
    __tablename__ = "asset"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market: Mapped[MarketClass] = mapped_column(enum_column(MarketClass), nullable=False)
    ticker: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(100), default="")
    fcs_id: Mapped[Optional[str]] = mapped_column(String(32))  # FCS API symbol id

    decimal_scale: Mapped[int] = mapped_column(Integer, default=2)
    buy_spread: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))  # % or pips for forex
    sell_spread: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))

    rate: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    rate_buy: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    rate_sell: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    change: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))  # 24h %
    sentiment: Mapped[int] = mapped_column(Integer, default=0)
    sentiment_type: Mapped[str] = mapped_column(String(16), default="")

    leverage_allowed: Mapped[int] = mapped_column(Integer, default=0)  # 0 = market default
    tradable: Mapped[bool] = mapped_column(Boolean, default=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    currency: Mapped[str] = mapped_column(String(8), default="USD")  # settlement currency
    base_currency: Mapped[Optional[str]] = mapped_column(String(8))  # forex base, e.g. EUR in EUR/USD
    pip_decimals: Mapped[Optional[int]] = mapped_column(Integer)  # 2 for JPY quotes, else 4

    updated: Mapped[int] = mapped_column(BigInteger, default=0)  # epoch seconds

    __table_args__ = (
        Index('idx_asset_market', 'market'),
        Index('idx_asset_updated', 'updated'),
    )

    @property
    def is_forex(self) -> bool:
        return self.market == MarketClass.FOREX

    def __repr__(self) -> str:
        return f"<Asset {self.ticker} {self.rate}>"


class RateSample(Base):
    """Historical rate point, written at most once per throttle window."""
    __tablename__ = "rate_sample"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = mapped_column(Integer, ForeignKey("asset.id"), nullable=False)
    rate: Mapped[Decimal] = mapped_column(DecimalType(), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch seconds

    __table_args__ = (
        Index('idx_rate_sample_asset_ts', 'asset_id', 'timestamp'),
    )
