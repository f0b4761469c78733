# bulletin/clock.py
"""
Server time source.

Every lifecycle timestamp (deleted_at, updated_at, performed_at) and every
visibility check uses the same clock, expressed as naive school-local time.
Clients get this time from /v1/time/current instead of their own clocks.
"""

from datetime import datetime, timedelta, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo

from bulletin.config import get_settings


class Clock(Protocol):
    """Anything that can report the current school-local time."""

    def now(self) -> datetime:
        """Current time as a naive datetime in the school timezone."""
        ...


class SystemClock:
    """Wall clock converted to the configured school timezone."""

    def __init__(self, tz: str | tzinfo = "Asia/Manila"):
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    def now(self) -> datetime:
        return datetime.now(self.tz).replace(tzinfo=None)

    def aware_now(self) -> datetime:
        return datetime.now(self.tz)

    def to_local(self, value: datetime) -> datetime:
        """Convert an aware datetime to naive school-local time. Naive values are assumed local."""
        if value.tzinfo is None:
            return value
        return value.astimezone(self.tz).replace(tzinfo=None)


class FixedClock:
    """Clock pinned to a given instant. Used by tests and dry-run previews."""

    def __init__(self, at: datetime):
        self._at = at

    def now(self) -> datetime:
        return self._at

    def advance(self, **kwargs) -> None:
        self._at = self._at + timedelta(**kwargs)

    def set(self, at: datetime) -> None:
        self._at = at


_system_clock: SystemClock | None = None


def _default_clock() -> SystemClock:
    global _system_clock
    if _system_clock is None:
        _system_clock = SystemClock(get_settings().SCHOOL_TIMEZONE)
    return _system_clock


def get_clock() -> Clock:
    """
    FastAPI dependency returning the process clock.

    Tests override this dependency with a FixedClock.
    """
    return _default_clock()


def to_school_local(value: datetime) -> datetime:
    """Naive school-local rendition of `value`. Naive values pass through unchanged."""
    return _default_clock().to_local(value)


def school_now() -> datetime:
    """Column default for rows written outside the services."""
    return _default_clock().now()
