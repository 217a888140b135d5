"""
Domain Models - Price Alerts
Exchange Trading Platform
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from exchange.db.base import Base
from exchange.db.models.market import enum_column
from exchange.db.types import DecimalType


class AlertDirection(str, Enum):
    """Side of the target price the rate was on when the alert was set."""
    HIGHER = "higher"  # fires when rate <= price
    LOWER = "lower"    # fires when rate >= price


class AlertStatus(str, Enum):
    ACTIVE = "active"
    FIRED = "fired"


class Alert(Base):
    """Member request to be notified when an asset crosses a price."""
    __tablename__ = "alert"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(Integer, ForeignKey("member.id"), nullable=False)
    asset_id: Mapped[int] = mapped_column(Integer, ForeignKey("asset.id"), nullable=False)
    direction: Mapped[AlertDirection] = mapped_column(enum_column(AlertDirection), nullable=False)
    price: Mapped[Decimal] = mapped_column(DecimalType(), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), default="USD")
    status: Mapped[AlertStatus] = mapped_column(enum_column(AlertStatus), default=AlertStatus.ACTIVE)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    fired_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    seen_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index('idx_alert_asset_status', 'asset_id', 'status'),
        Index('idx_alert_member', 'member_id'),
    )

    def crossed_by(self, rate: Decimal) -> bool:
        """True if `rate` reached the target from the side it started on."""
        if self.direction == AlertDirection.LOWER:
            return rate >= self.price
        return rate <= self.price
