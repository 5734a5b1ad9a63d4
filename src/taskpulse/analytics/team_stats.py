# src/taskpulse/analytics/team_stats.py

from __future__ import annotations

"""
Team statistics.

Everything here is derived from the inputs alone (no accumulator state), so
recompute() is idempotent and safe to call concurrently with reads: it only
builds a new immutable snapshot.
"""

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, replace
from datetime import date, datetime, timedelta
from typing import Any

from ..tasks.task_models import TaskPriority, TaskStatus, TeamTask
from .history import OwnerKey, TimeSeriesHistory
from .streaks import current_streak

WEEK_DAYS = 7


@dataclass(frozen=True, slots=True)
class MemberContribution:
    member_id: str
    member_name: str
    tasks_completed: int
    completion_percentage: float


@dataclass(frozen=True, slots=True)
class TeamStats:
    team_id: str
    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    in_progress_tasks: int
    tasks_by_priority: dict[str, int]
    member_contributions: tuple[MemberContribution, ...]
    team_completion_rate: float
    last_updated: datetime

    def to_document(self) -> dict[str, Any]:
        doc = asdict(self)
        doc["member_contributions"] = [asdict(m) for m in self.member_contributions]
        doc["last_updated"] = self.last_updated.isoformat()
        return doc


@dataclass(frozen=True, slots=True)
class MemberActivity:
    member_id: str
    member_name: str
    task_completed_today: int
    task_completed_this_week: int
    current_streak: int
    last_active_at: datetime | None

    def to_document(self, team_id: str) -> dict[str, Any]:
        doc = asdict(self)
        doc["team_id"] = team_id
        doc["last_active_at"] = self.last_active_at.isoformat() if self.last_active_at else None
        return doc


def _pct(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return part / whole * 100.0


def recompute(
        team_id: str,
        tasks: Iterable[TeamTask],
        member_names: Mapping[str, str] | None = None,
        now: datetime | None = None,
) -> TeamStats:
    """Build a TeamStats snapshot from the current team task list."""
    task_list = list(tasks)
    names = member_names or {}

    by_status = Counter(t.status for t in task_list)
    by_priority = Counter(t.priority for t in task_list)
    completed = by_status[TaskStatus.COMPLETED]

    per_member = Counter(t.assignee_id for t in task_list if t.status == TaskStatus.COMPLETED)
    contributions = tuple(
        MemberContribution(
            member_id=member_id,
            member_name=names.get(member_id, member_id),
            tasks_completed=count,
            completion_percentage=_pct(count, completed),
        )
        for member_id, count in sorted(per_member.items(), key=lambda kv: (-kv[1], kv[0]))
    )

    return TeamStats(
        team_id=team_id,
        total_tasks=len(task_list),
        completed_tasks=completed,
        pending_tasks=by_status[TaskStatus.PENDING],
        in_progress_tasks=by_status[TaskStatus.IN_PROGRESS],
        tasks_by_priority={p.value: by_priority[p] for p in TaskPriority},
        member_contributions=contributions,
        team_completion_rate=_pct(completed, len(task_list)),
        last_updated=now or datetime.now().astimezone(),
    )


def bump_activity(
        previous: MemberActivity | None,
        member_id: str,
        member_name: str,
        now: datetime,
) -> MemberActivity:
    """Optimistic +1 for a completion that was just made; reconciled later."""
    if previous is None:
        return MemberActivity(
            member_id=member_id,
            member_name=member_name,
            task_completed_today=1,
            task_completed_this_week=1,
            current_streak=1,
            last_active_at=now,
        )
    return replace(
        previous,
        task_completed_today=previous.task_completed_today + 1,
        task_completed_this_week=previous.task_completed_this_week + 1,
        current_streak=max(previous.current_streak, 1),
        last_active_at=now,
    )


def member_activity(
        member_id: str,
        history: TimeSeriesHistory,
        team_id: str,
        today: date,
        *,
        member_name: str | None = None,
        last_active_at: datetime | None = None,
) -> MemberActivity:
    """Authoritative per-member rollup from the team-scoped history rows."""
    owner = OwnerKey(member_id, team_id)
    week_start = today - timedelta(days=WEEK_DAYS - 1)
    today_row = history.get(today, owner)
    return MemberActivity(
        member_id=member_id,
        member_name=member_name or member_id,
        task_completed_today=today_row.completed_tasks if today_row else 0,
        task_completed_this_week=history.completed_between(owner, week_start, today),
        current_streak=current_streak(history.all_entries(owner), today),
        last_active_at=last_active_at,
    )
