"""
Custom column types.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator


class DecimalType(TypeDecorator):
    """
    Exact decimal column.

    NUMERIC on PostgreSQL; decimal text elsewhere, since SQLite would
    otherwise round-trip through binary floats. Text columns do not order
    numerically, so range filters on them must run in Python.
    """

    impl = String
    cache_ok = True

    def __init__(self, precision: int = 36, scale: int = 18) -> None:
        super().__init__(64)
        self.precision = precision
        self.scale = scale

    def load_dialect_impl(self, dialect):  # type: ignore[override]
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(self.precision, self.scale, asdecimal=True))
        return dialect.type_descriptor(String(64))

    def process_bind_param(self, value, dialect) -> Optional[object]:
        if value is None:
            return None
        value = Decimal(value)
        if dialect.name == "postgresql":
            return value
        return format(value, "f")

    def process_result_value(self, value, dialect) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(value)
