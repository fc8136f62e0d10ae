"""
Numeric conversion at the persistence boundary.

Values arrive as str, int, float or Decimal depending on the exchange and the
driver. Invalid input raises InvalidNumericValue instead of turning into 0.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from tradesync.core.errors import InvalidNumericValue


def to_decimal(value: Any, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidNumericValue(field, value)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        # via str so 0.1 stays 0.1
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidNumericValue(field, value)
    else:
        raise InvalidNumericValue(field, value)

    if not result.is_finite():
        raise InvalidNumericValue(field, value)
    return result


def to_optional_decimal(value: Any, field: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return to_decimal(value, field)


def to_epoch_ms(value: Any, field: str) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    result = to_decimal(value, field)
    if result < 0:
        raise InvalidNumericValue(field, value)
    return int(result)


def to_float(value: Any, field: str) -> float:
    return float(to_decimal(value, field))
