"""Column types for on-chain integer widths."""

from decimal import Decimal

from typing import Any

from sqlalchemy import Numeric, String
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeDecorator, TypeEngine


NUMERIC_PRECISION = 78
"""Decimal digits needed for any uint256 or int256 value"""

SQLITE_OFFSET = 2**255
"""Shift that maps int256 into the non-negative range for text storage"""


class BigNumeric(TypeDecorator[int]):
    """Exact 256-bit integer column.

    PostgreSQL stores values as NUMERIC(78, 0). SQLite has no exact wide
    numeric type, so values are shifted by 2**255 and stored as zero-padded
    decimal text; lexical order then equals numeric order, and comparisons
    and ORDER BY keep working.

    Example:
        ```python
        class SwapEventDB(Base):
            amount0: Mapped[int] = mapped_column(BigNumeric, nullable=False)
        ```
    """

    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(NUMERIC_PRECISION))
        return dialect.type_descriptor(Numeric(NUMERIC_PRECISION, 0))

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        value = int(value)
        if dialect.name == "sqlite":
            return f"{value + SQLITE_OFFSET:0{NUMERIC_PRECISION}d}"
        return Decimal(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> int | None:
        if value is None:
            return None
        if dialect.name == "sqlite":
            return int(value) - SQLITE_OFFSET
        return int(value)


__all__ = ["NUMERIC_PRECISION", "SQLITE_OFFSET", "BigNumeric"]
