"""
Clock sources and time formatting utilities.

Every period boundary is taken from a clock object so that the engine,
the timer observer and the tests agree on a single notion of "now".
"""

import threading
import time
from datetime import datetime, timezone
from typing import Optional


class SystemClock:
    """Wall-clock milliseconds since epoch that never move backwards."""

    def __init__(self):
        self._last_ms = 0
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        """
        Get the current wall-clock time in milliseconds.

        If the system clock is stepped backwards the last returned value is
        repeated, so consecutive boundaries are always ordered.

        Returns:
            Milliseconds since the Unix epoch
        """
        current = time.time_ns() // 1_000_000
        with self._lock:
            if current < self._last_ms:
                current = self._last_ms
            self._last_ms = current
        return current


class ManualClock:
    """Settable clock for tests, replays and deterministic scripts."""

    def __init__(self, start_ms: int = 0):
        self._now_ms = int(start_ms)

    def now_ms(self) -> int:
        return self._now_ms

    def set(self, value_ms: int) -> None:
        if value_ms < self._now_ms:
            raise ValueError(f"Clock cannot move backwards: {value_ms} < {self._now_ms}")
        self._now_ms = int(value_ms)

    def advance(self, delta_ms: int) -> int:
        """Move the clock forward and return the new time."""
        if delta_ms < 0:
            raise ValueError(f"Clock cannot move backwards by {delta_ms} ms")
        self._now_ms += int(delta_ms)
        return self._now_ms


def elapsed_ms(start_ms: int, now_ms: int) -> int:
    """
    Calculate elapsed milliseconds between a period start and now.

    Args:
        start_ms: Period start timestamp
        now_ms: Current timestamp

    Returns:
        Elapsed milliseconds, never negative
    """
    return max(0, now_ms - start_ms)


def ms_to_datetime(timestamp_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def datetime_to_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are treated as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def format_timestamp(timestamp_ms: Optional[int]) -> str:
    """
    Format an epoch-millisecond timestamp for logs and display.

    Args:
        timestamp_ms: Timestamp to format, or None for an open boundary

    Returns:
        ISO8601 string, or "open" when no timestamp is given
    """
    if timestamp_ms is None:
        return "open"
    return ms_to_datetime(timestamp_ms).isoformat()


def format_elapsed(duration_ms: int) -> str:
    """
    Format elapsed milliseconds as HH:MM:SS, prefixed with days past 24 hours.

    Examples:
        3723000  -> "01:02:03"
        90061000 -> "1 day 01:01:01"
    """
    total_seconds = max(0, duration_ms) // 1000
    days, remainder = divmod(total_seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    clock = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    if days > 0:
        return f"{days} day{'s' if days > 1 else ''} {clock}"
    return clock


def format_duration(seconds: int) -> str:
    """Format a duration in seconds as a compact "1h 5m 3s" string."""
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")

    return " ".join(parts)
