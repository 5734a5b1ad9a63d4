# src/taskpulse/core/clock.py

from __future__ import annotations

from datetime import date, datetime, timedelta


class SystemClock:
    """Local wall clock (timezone-aware)."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


def is_weekend(moment: datetime) -> bool:
    return moment.weekday() >= 5


def days_back(day: date, n: int) -> list[date]:
    """n calendar days ending at `day`, oldest first."""
    return [day - timedelta(days=i) for i in range(n - 1, -1, -1)]
