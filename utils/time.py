"""
Time utilities.

Card records store epoch-millisecond timestamps; analytics buckets views by
UTC calendar day.
"""

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return time.time_ns() // 1_000_000


def get_utc_time() -> datetime:
    """Get current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ms_to_datetime(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def ms_to_iso_date(timestamp_ms: int) -> str:
    """
    Convert epoch milliseconds to a UTC ``YYYY-MM-DD`` string.

    Args:
        timestamp_ms: Epoch timestamp in milliseconds

    Returns:
        ISO calendar date of the timestamp in UTC
    """
    return ms_to_datetime(timestamp_ms).strftime("%Y-%m-%d")
