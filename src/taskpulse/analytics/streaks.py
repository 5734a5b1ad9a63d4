# src/taskpulse/analytics/streaks.py

"""
Consecutive-day completion streaks.

Only the (day -> had at least one completion) projection of the history is used,
so input order and duplicate rows for the same day do not change the result.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

from .history import HistoryEntry


def _active_days(entries: Iterable[HistoryEntry]) -> set[date]:
    return {e.day for e in entries if e.has_activity}


def current_streak(entries: Iterable[HistoryEntry], today: date) -> int:
    """
    Number of consecutive active days ending today (or yesterday).

    An idle "today" does not break a streak that ran through yesterday;
    an idle today AND yesterday means no streak.
    """
    active = _active_days(entries)
    yesterday = today - timedelta(days=1)

    if today not in active and yesterday not in active:
        return 0

    # Anchor at today when it is active, otherwise at yesterday.
    count = 1 if today in active else 0
    cursor = yesterday
    while cursor in active:
        count += 1
        cursor -= timedelta(days=1)
    return count


def longest_streak(entries: Iterable[HistoryEntry]) -> int:
    active = sorted(_active_days(entries))
    best = run = 0
    prev: date | None = None
    for day in active:
        run = run + 1 if prev is not None and day - prev == timedelta(days=1) else 1
        best = max(best, run)
        prev = day
    return best
