# src/taskpulse/analytics/history.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OwnerKey:
    """Who a history row belongs to: a user, or a user inside a team."""

    user_id: str
    team_id: str | None = None

    @property
    def is_team(self) -> bool:
        return self.team_id is not None

    def filters(self) -> dict[str, Any]:
        """Equality filters identifying this owner in the remote completions collection."""
        return {"user_id": self.user_id, "team_id": self.team_id or ""}

    def __str__(self) -> str:
        return f"{self.team_id}/{self.user_id}" if self.is_team else self.user_id


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    day: date
    owner: OwnerKey
    completed_tasks: int = 0
    total_tasks: int = 0

    @property
    def has_activity(self) -> bool:
        return self.completed_tasks > 0

    def to_document(self) -> dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            **self.owner.filters(),
            "completed_tasks": self.completed_tasks,
            "total_tasks": self.total_tasks,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> HistoryEntry:
        completed = max(0, int(doc.get("completed_tasks") or 0))
        total = max(completed, int(doc.get("total_tasks") or 0))
        return cls(
            day=date.fromisoformat(str(doc["date"])[:10]),
            owner=OwnerKey(str(doc.get("user_id") or ""), (doc.get("team_id") or None)),
            completed_tasks=completed,
            total_tasks=total,
        )


class TimeSeriesHistory:
    """
    Per-day {completed, total} counters keyed by (day, owner).

    At most one entry exists per key (upsert). Reads never mutate storage.
    """

    def __init__(self, entries: Iterable[HistoryEntry] = ()) -> None:
        self._rows: dict[tuple[date, OwnerKey], HistoryEntry] = {}
        for e in entries:
            self.merge(e)

    def __len__(self) -> int:
        return len(self._rows)

    # ---- writes ----

    def record_completion(self, day: date, owner: OwnerKey) -> HistoryEntry:
        """
        Count one completion event.

        total_tasks is bumped together with completed_tasks: every completed task
        is also a task that existed that day. This is a proxy, not a true count
        of all tasks due that day.
        """
        key = (day, owner)
        prev = self._rows.get(key)
        if prev is None:
            entry = HistoryEntry(day=day, owner=owner, completed_tasks=1, total_tasks=1)
        else:
            entry = replace(
                prev,
                completed_tasks=prev.completed_tasks + 1,
                total_tasks=prev.total_tasks + 1,
            )
        self._rows[key] = entry
        logger.debug(
            "History upsert owner=%s day=%s completed=%s total=%s",
            owner,
            day,
            entry.completed_tasks,
            entry.total_tasks,
        )
        return entry

    def merge(self, entry: HistoryEntry) -> HistoryEntry:
        """Fold in a row read from elsewhere (remote, seed). Counters only grow."""
        key = (entry.day, entry.owner)
        prev = self._rows.get(key)
        if prev is None:
            merged = entry
        else:
            completed = max(prev.completed_tasks, entry.completed_tasks)
            merged = replace(
                prev,
                completed_tasks=completed,
                total_tasks=max(prev.total_tasks, entry.total_tasks, completed),
            )
        self._rows[key] = merged
        return merged

    # ---- reads ----

    def get(self, day: date, owner: OwnerKey) -> HistoryEntry | None:
        return self._rows.get((day, owner))

    def owners(self) -> list[OwnerKey]:
        seen = {owner for (_, owner) in self._rows}
        return sorted(seen, key=lambda o: (o.team_id or "", o.user_id))

    def all_entries(self, owner: OwnerKey) -> list[HistoryEntry]:
        """Recorded rows for one owner, oldest first."""
        rows = [e for (_, o), e in self._rows.items() if o == owner]
        rows.sort(key=lambda e: e.day)
        return rows

    def entries(self, owner: OwnerKey, window: int, today: date) -> list[HistoryEntry]:
        """
        Exactly `window` entries ending at `today`, oldest first.

        Days without a recorded row come back as zero entries.
        """
        if window <= 0:
            return []
        out: list[HistoryEntry] = []
        for offset in range(window - 1, -1, -1):
            day = today - timedelta(days=offset)
            row = self._rows.get((day, owner))
            out.append(row if row is not None else HistoryEntry(day=day, owner=owner))
        return out

    def completion_rate(self, owner: OwnerKey, window: int, today: date) -> float:
        return completion_rate(self.all_entries(owner), today, window)

    def completed_between(self, owner: OwnerKey, start: date, end: date) -> int:
        """Sum of completed_tasks for start <= day <= end."""
        return sum(
            e.completed_tasks
            for (day, o), e in self._rows.items()
            if o == owner and start <= day <= end
        )


def completion_rate(entries: Iterable[HistoryEntry], today: date, window: int) -> float:
    """
    completed / total over the `window` days ending today.

    0.0 when nothing was recorded in the window.
    """
    start = today - timedelta(days=window - 1)
    completed = total = 0
    for e in entries:
        if start <= e.day <= today:
            completed += e.completed_tasks
            total += e.total_tasks
    if total <= 0:
        return 0.0
    return completed / total
