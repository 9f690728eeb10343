"""Wall clock used for token expiry decisions."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Callable

# Returns the current time as Unix epoch milliseconds
Clock = Callable[[], int]


def system_clock() -> int:
    """Current time in epoch milliseconds."""
    return int(datetime.now().timestamp() * 1000)


def parse_int(value: int | float | str) -> int:
    """Lenient integer parse for token lifetimes and timestamps.

    Accepts ints, floats and numeric strings such as ``"3600.0"``; the
    fractional part is truncated.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value!r}")
    return int(number)


def expires_at_from(now: int, expires_in: int | float | str) -> int:
    """Absolute expiry (ms) for a lifetime given in seconds."""
    return now + parse_int(expires_in) * 1000
