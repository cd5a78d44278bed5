import math
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional


def as_utc(value: datetime) -> datetime:
    """SQLite hands timezone-aware columns back naive; treat those as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    elapsed = (as_utc(now) - as_utc(started_at)).total_seconds()
    return max(0, math.floor(elapsed))


def remaining_seconds(started_at: datetime, now: datetime, duration_seconds: int) -> int:
    """
    Time left on the global exam timer.

    Always derived from the immutable ``started_at`` anchor and a fresh clock
    read, never from a stored countdown, so reloading or resuming cannot
    change the result. A clock read earlier than ``started_at`` counts as zero
    elapsed time.
    """
    return max(0, duration_seconds - elapsed_seconds(started_at, now))


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Manually driven clock for tests and replay."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = as_utc(start) if start else datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, value: datetime) -> None:
        with self._lock:
            self._now = as_utc(value)

    def advance(self, seconds: float = 0, minutes: float = 0) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(seconds=seconds, minutes=minutes)
            return self._now


system_clock = SystemClock()
