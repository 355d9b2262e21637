"""Shared utility functions for migration scripts"""

import time
from datetime import datetime, timezone
from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")

# Constants for time conversions
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """
    Split a sequence into consecutive chunks of at most ``size`` items.

    Args:
        items: Sequence to split
        size: Maximum chunk length, must be positive

    Raises:
        ValueError: If size is smaller than 1
    """
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def format_duration(seconds: float) -> str:
    """Format seconds to human readable duration"""
    if seconds < SECONDS_PER_MINUTE:
        return f"{int(seconds)}s"
    if seconds < SECONDS_PER_HOUR:
        minutes = int(seconds / SECONDS_PER_MINUTE)
        secs = int(seconds % SECONDS_PER_MINUTE)
        return f"{minutes}m {secs}s"
    if seconds < SECONDS_PER_DAY:
        hours = int(seconds / SECONDS_PER_HOUR)
        minutes = int((seconds % SECONDS_PER_HOUR) / SECONDS_PER_MINUTE)
        return f"{hours}h {minutes}m"
    days = int(seconds / SECONDS_PER_DAY)
    hours = int((seconds % SECONDS_PER_DAY) / SECONDS_PER_HOUR)
    return f"{days}d {hours}h"


def get_utc_now() -> str:
    """Get current UTC timestamp as ISO format string"""
    return datetime.now(timezone.utc).isoformat()


class ProgressTracker:
    """Counts completed items against a total and redraws a console line
    at most once per ``update_interval`` seconds."""

    def __init__(self, total: int, label: str, update_interval: float = 1.0):
        self.total = total
        self.label = label
        self.update_interval = update_interval
        self.current = 0
        self.start = time.time()
        self.last_update = 0.0

    def advance(self, step: int = 1) -> None:
        """Add ``step`` completed items and redraw if the interval has elapsed"""
        self.current += step
        now = time.time()
        if self.current >= self.total or now - self.last_update >= self.update_interval:
            self._render(now)

    def _render(self, now: float) -> None:
        if self.total:
            pct = (self.current / self.total) * 100
            status = f"{self.current:,}/{self.total:,} ({pct:5.1f}%)"
        else:
            status = f"{self.current:,}"
        elapsed = format_duration(now - self.start)
        print(f"\r  {self.label}: {status} [{elapsed}]", end="", flush=True)
        self.last_update = now

    def finish(self) -> None:
        """Draw the final state and end the progress line"""
        self._render(time.time())
        print()
