"""
Amount parsing and timestamp helpers shared by every mutating operation.
"""

import math
from datetime import datetime, timezone
from typing import Any, Optional, Union

from .exceptions import InvalidAmount


def parse_amount(value: Union[int, float, str, None]) -> int:
    """
    Parse a GP amount.
    
    The input must be a finite number strictly greater than zero; it is
    floored to an integer. Values that floor to zero are rejected too, since
    every recorded amount is a positive integer.
    
    Raises:
        InvalidAmount: for anything else
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount(value)
    
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidAmount(value)
        try:
            number = float(text)
        except ValueError:
            raise InvalidAmount(value)
    elif isinstance(value, (int, float)):
        number = value
    else:
        raise InvalidAmount(value)
    
    if isinstance(number, float) and not math.isfinite(number):
        raise InvalidAmount(value)
    if number <= 0:
        raise InvalidAmount(value)
    
    amount = math.floor(number)
    if amount <= 0:
        raise InvalidAmount(value)
    return int(amount)


def utc_timestamp() -> str:
    """Current time as ISO-8601 UTC with millisecond precision, e.g. 2024-01-01T12:00:00.000Z"""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def stored_number(value: Any) -> Optional[Union[int, float]]:
    """
    Numeric value of a balance read back from a snapshot.
    
    Ints and finite floats are taken as-is and numeric strings are parsed;
    integral values come back as int. Anything else (booleans, None, NaN,
    infinity, non-numeric text) yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    
    if not math.isfinite(number):
        return None
    if number.is_integer():
        return int(number)
    return number


def stored_balance(value: Any) -> Union[int, float]:
    """Balance read back from a snapshot; unusable values count as 0"""
    number = stored_number(value)
    return 0 if number is None else number
