from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def today(self) -> date:
        """Return the current calendar date."""

    def now(self) -> datetime:
        """Return the current timezone-aware time."""


class SystemClock:
    def today(self) -> date:
        return self.now().date()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    def __init__(self, current: date | datetime) -> None:
        if isinstance(current, datetime):
            self._now = current if current.tzinfo else current.replace(tzinfo=timezone.utc)
        else:
            self._now = datetime(current.year, current.month, current.day, tzinfo=timezone.utc)

    def today(self) -> date:
        return self._now.date()

    def now(self) -> datetime:
        return self._now

    def advance(self, *, days: int) -> None:
        self._now = self._now + timedelta(days=days)
