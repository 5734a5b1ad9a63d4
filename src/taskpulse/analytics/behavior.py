# src/taskpulse/analytics/behavior.py

from __future__ import annotations

"""
Behavior patterns derived from completion history and completion events.

The analyzer is pure: the same inputs always give the same pattern, and it never
raises. Too little data (fewer than MIN_HISTORY_ENTRIES rows) or an internal
failure both produce an all-zero pattern.
"""

import logging
import statistics
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from ..tasks.task_models import Task, TaskPriority
from .history import HistoryEntry

MIN_HISTORY_ENTRIES = 3
SESSION_GAP = timedelta(minutes=30)
MORNING_END_HOUR = 12


@dataclass(frozen=True, slots=True)
class CompletionEvent:
    completed_at: datetime
    created_at: datetime
    priority: TaskPriority = TaskPriority.MEDIUM

    @property
    def lead_time(self) -> timedelta:
        return max(self.completed_at - self.created_at, timedelta(0))


@dataclass(frozen=True, slots=True)
class BehaviorPattern:
    user_id: str
    hourly_activity: tuple[float, ...]
    daily_activity: tuple[float, ...]  # Monday = index 0
    prefers_difficult_tasks_in_morning: bool = False
    prefers_short_tasks_first: bool = False
    average_session_duration: float = 0.0  # minutes

    @classmethod
    def empty(cls, user_id: str) -> BehaviorPattern:
        return cls(user_id=user_id, hourly_activity=(0.0,) * 24, daily_activity=(0.0,) * 7)

    @property
    def is_empty(self) -> bool:
        return not any(self.hourly_activity) and not any(self.daily_activity)


def events_from_tasks(tasks: Iterable[Task]) -> list[CompletionEvent]:
    """Completion events for tasks that carry a completion timestamp."""
    out: list[CompletionEvent] = []
    for t in tasks:
        if t.is_completed and t.completed_at is not None:
            out.append(CompletionEvent(t.completed_at, t.created_at, t.priority))
    out.sort(key=lambda e: (e.completed_at, e.lead_time))
    return out


def _normalize(values: Sequence[float]) -> tuple[float, ...]:
    top = max(values, default=0.0)
    if top <= 0:
        return tuple(0.0 for _ in values)
    return tuple(round(v / top, 4) for v in values)


def _group_by_day(events: Sequence[CompletionEvent]) -> dict[date, list[CompletionEvent]]:
    days: dict[date, list[CompletionEvent]] = defaultdict(list)
    for e in events:
        days[e.completed_at.date()].append(e)
    for bucket in days.values():
        bucket.sort(key=lambda e: (e.completed_at, e.lead_time))
    return days


def _prefers_difficult_in_morning(events: Sequence[CompletionEvent]) -> bool:
    high = [e for e in events if e.priority == TaskPriority.HIGH]
    if not high:
        return False
    morning = sum(1 for e in high if e.completed_at.hour < MORNING_END_HOUR)
    return morning * 2 > len(high)


def _prefers_short_first(events: Sequence[CompletionEvent]) -> bool:
    if len(events) < 2:
        return False
    median_lead = statistics.median(e.lead_time.total_seconds() for e in events)
    busy_days = [bucket for bucket in _group_by_day(events).values() if len(bucket) >= 2]
    if not busy_days:
        return False
    short_first = sum(1 for bucket in busy_days if bucket[0].lead_time.total_seconds() < median_lead)
    return short_first * 2 > len(busy_days)


def _average_session_minutes(events: Sequence[CompletionEvent]) -> float:
    spans: list[float] = []
    for bucket in _group_by_day(events).values():
        start = prev = bucket[0].completed_at
        size = 1
        for e in bucket[1:]:
            if e.completed_at - prev > SESSION_GAP:
                if size >= 2:
                    spans.append((prev - start).total_seconds() / 60.0)
                start, size = e.completed_at, 0
            prev = e.completed_at
            size += 1
        if size >= 2:
            spans.append((prev - start).total_seconds() / 60.0)
    if not spans:
        return 0.0
    return round(sum(spans) / len(spans), 1)


class BehaviorAnalyzer:
    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._log = logger or logging.getLogger(__name__)

    def analyze(
            self,
            user_id: str,
            history: Sequence[HistoryEntry],
            events: Iterable[CompletionEvent] = (),
    ) -> BehaviorPattern:
        if len(history) < MIN_HISTORY_ENTRIES:
            return BehaviorPattern.empty(user_id)
        try:
            return self._analyze(user_id, history, list(events))
        except Exception:
            self._log.exception("Behavior analysis failed user=%s; using empty pattern", user_id)
            return BehaviorPattern.empty(user_id)

    @staticmethod
    def _analyze(
            user_id: str,
            history: Sequence[HistoryEntry],
            events: list[CompletionEvent],
    ) -> BehaviorPattern:
        events.sort(key=lambda e: (e.completed_at, e.lead_time))

        daily = [0.0] * 7
        for entry in history:
            daily[entry.day.weekday()] += max(0, entry.completed_tasks)

        hourly = [0.0] * 24
        for e in events:
            hourly[e.completed_at.hour] += 1

        return BehaviorPattern(
            user_id=user_id,
            hourly_activity=_normalize(hourly),
            daily_activity=_normalize(daily),
            prefers_difficult_tasks_in_morning=_prefers_difficult_in_morning(events),
            prefers_short_tasks_first=_prefers_short_first(events),
            average_session_duration=_average_session_minutes(events),
        )


def peak_hour(pattern: BehaviorPattern, candidates: Iterable[int]) -> int | None:
    """Most active hour among candidates (earliest wins ties); None when all are idle."""
    best: int | None = None
    best_val = 0.0
    for hour in sorted(set(candidates)):
        if not 0 <= hour < 24:
            continue
        val = pattern.hourly_activity[hour]
        if val > best_val:
            best, best_val = hour, val
    return best
