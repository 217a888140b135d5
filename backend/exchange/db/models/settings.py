"""
Domain Models - System Settings
Exchange Trading Platform

Single-row table holding the operator-editable trading rules and feed
keys. Values of zero fall back to the environment defaults.
"""

from decimal import Decimal

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from exchange.db.base import Base
from exchange.db.types import DecimalType


SETTINGS_ROW_ID = 1


class SystemSettings(Base):
    """Operator-editable trading rules."""
    __tablename__ = "system_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SETTINGS_ROW_ID)

    leverage_crypto: Mapped[int] = mapped_column(Integer, default=0)
    leverage_stock: Mapped[int] = mapped_column(Integer, default=0)
    leverage_forex: Mapped[int] = mapped_column(Integer, default=0)
    leverage_commodity: Mapped[int] = mapped_column(Integer, default=0)
    leverage_index: Mapped[int] = mapped_column(Integer, default=0)

    stop_loss_protection: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    take_profit_protection: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    stop_loss_allowed: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))
    take_profit_allowed: Mapped[Decimal] = mapped_column(DecimalType(), default=Decimal("0"))

    api_key_iex: Mapped[str] = mapped_column(String(128), default="")
    api_key_fcs: Mapped[str] = mapped_column(String(128), default="")
