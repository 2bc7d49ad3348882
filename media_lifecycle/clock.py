"""Injectable time source.

Every expiry and retention decision reads the time through a ``Clock`` so
that tests can move time forward without sleeping. Timestamps are naive UTC,
matching how the ledger stores them.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock:
    """Wall-clock time source."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FrozenClock(Clock):
    """Clock that only moves when told to.

    Example:
        >>> clock = FrozenClock(datetime(2026, 1, 1))
        >>> clock.advance(days=8)
        >>> clock.now()
        datetime.datetime(2026, 1, 9, 0, 0)
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or Clock().now()

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta) -> None:
        self._now = self._now + timedelta(**delta)

    def set(self, value: datetime) -> None:
        self._now = value


system_clock = Clock()
