# src/taskpulse/devtools/seed.py

"""
Dev-only demo data.

Random completion history so streak / rate / pattern views have something to
show on a fresh install. Never used by the stores themselves.
"""

from __future__ import annotations

import random
from datetime import date, timedelta

from ..analytics.history import HistoryEntry, OwnerKey, TimeSeriesHistory

SEED_DAYS = 14
ACTIVITY_CHANCE = 0.7
MAX_TASKS_PER_DAY = 5


def random_history(
        owner: OwnerKey,
        today: date,
        *,
        days: int = SEED_DAYS,
        rng: random.Random | None = None,
) -> list[HistoryEntry]:
    """One entry per active day over the last `days` days (oldest first); idle days are skipped."""
    rng = rng or random.Random()
    out: list[HistoryEntry] = []
    for offset in range(days - 1, -1, -1):
        if rng.random() >= ACTIVITY_CHANCE:
            continue
        total = rng.randint(1, MAX_TASKS_PER_DAY)
        completed = rng.randint(0, total)
        out.append(
            HistoryEntry(
                day=today - timedelta(days=offset),
                owner=owner,
                completed_tasks=completed,
                total_tasks=total,
            )
        )
    return out


def seed_history(
        history: TimeSeriesHistory,
        owner: OwnerKey,
        today: date,
        *,
        days: int = SEED_DAYS,
        rng: random.Random | None = None,
) -> int:
    """Merge random rows into `history`; returns how many rows were generated."""
    rows = random_history(owner, today, days=days, rng=rng)
    for row in rows:
        history.merge(row)
    return len(rows)
