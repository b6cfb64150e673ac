"""
Time Utilities

Two kinds of time are used by the connection manager:
- Monotonic milliseconds for measuring silence and retry delays. These never
  jump when the wall clock is adjusted, so staleness checks stay correct.
- UTC datetimes for reporting (e.g. when a connection was established).
"""

import time
from datetime import datetime, timezone


def monotonic_ms() -> float:
    """
    Current monotonic clock reading in milliseconds.

    Only differences between two readings are meaningful.
    """
    return time.monotonic() * 1000.0


def ms_to_seconds(value_ms: float) -> float:
    """Convert milliseconds to seconds (asyncio.sleep takes seconds)"""
    return value_ms / 1000.0


def current_utc_datetime() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        datetime: Current time as timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)
