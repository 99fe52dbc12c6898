"""
Clock sources.

Every time-windowed check (velocity, rate limiting, daily limits, lockout)
reads "now" from one injected Clock, never from datetime.now() directly.
The pipeline takes ONE reading per evaluation and hands it to every scorer
and to the control gate, so a single decision never straddles two instants.
"""
from datetime import datetime, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


DEFAULT_TIMEZONE = "Asia/Manila"


class Clock:
    """Interface: `now()` returns a timezone-aware datetime."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):

    def __init__(self, timezone: str = DEFAULT_TIMEZONE):
        self.tz: tzinfo = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)


class ManualClock(Clock):
    """
    Clock that only moves when told to.

    Used by tests, and as the attack pacer in tests: passing
    `clock.sleep` as the orchestrator pacer turns "wait 0.3s" into a
    0.3s jump of simulated time.
    """

    def __init__(self, start: Optional[datetime] = None, timezone: str = DEFAULT_TIMEZONE):
        tz = ZoneInfo(timezone)
        if start is None:
            start = datetime(2026, 1, 15, 10, 0, 0, tzinfo=tz)
        elif start.tzinfo is None:
            start = start.replace(tzinfo=tz)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        """advance(seconds=61), advance(days=1), ..."""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, when: datetime) -> None:
        if when.tzinfo is None:
            when = when.replace(tzinfo=self._now.tzinfo)
        self._now = when

    def sleep(self, seconds: float) -> None:
        self.advance(seconds=seconds)
