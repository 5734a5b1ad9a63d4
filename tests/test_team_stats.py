# tests/test_team_stats.py

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

from taskpulse.analytics.history import HistoryEntry, OwnerKey, TimeSeriesHistory
from taskpulse.analytics.team_stats import bump_activity, member_activity, recompute
from taskpulse.tasks.task_models import TaskPriority, TaskStatus, TeamTask

T0 = datetime(2026, 10, 14, 9, 0, tzinfo=timezone.utc)


def _task(i: int, status: TaskStatus, assignee: str = "u1", priority: TaskPriority = TaskPriority.MEDIUM) -> TeamTask:
    return TeamTask(
        id=f"t{i}",
        title=f"task {i}",
        description="",
        due_date=T0,
        status=status,
        priority=priority,
        tags=[],
        owner_id="u1",
        created_at=T0,
        updated_at=T0,
        team_id="team",
        assignee_id=assignee,
        creator_id="u1",
    )


def _ten_tasks() -> list[TeamTask]:
    statuses = [TaskStatus.COMPLETED] * 4 + [TaskStatus.PENDING] * 3 + [TaskStatus.IN_PROGRESS] * 3
    assignees = ["u1", "u1", "u1", "u2"] + ["u2"] * 6
    return [_task(i, s, a) for i, (s, a) in enumerate(zip(statuses, assignees))]


def test_recompute_counts_and_rate() -> None:
    stats = recompute("team", _ten_tasks(), {"u1": "Ann"}, now=T0)

    assert stats.total_tasks == 10
    assert stats.completed_tasks == 4
    assert stats.pending_tasks == 3
    assert stats.in_progress_tasks == 3
    assert stats.completed_tasks + stats.pending_tasks + stats.in_progress_tasks == stats.total_tasks
    assert stats.team_completion_rate == 40.0
    assert stats.tasks_by_priority == {"low": 0, "medium": 10, "high": 0}


def test_member_contributions_sorted_and_named() -> None:
    stats = recompute("team", _ten_tasks(), {"u1": "Ann"}, now=T0)

    [first, second] = stats.member_contributions
    assert (first.member_id, first.member_name, first.tasks_completed) == ("u1", "Ann", 3)
    assert first.completion_percentage == 75.0
    assert (second.member_id, second.member_name, second.tasks_completed) == ("u2", "u2", 1)


def test_recompute_is_idempotent_except_timestamp() -> None:
    tasks = _ten_tasks()
    a = recompute("team", tasks, now=T0)
    b = recompute("team", tasks, now=T0 + timedelta(seconds=5))

    assert replace(a, last_updated=b.last_updated) == b
    assert a.to_document().keys() == b.to_document().keys()


def test_empty_team_has_zero_rate() -> None:
    stats = recompute("team", [], now=T0)
    assert stats.total_tasks == 0
    assert stats.team_completion_rate == 0.0
    assert stats.member_contributions == ()


def test_bump_activity_then_reconcile_from_history() -> None:
    today = date(2026, 10, 14)
    owner = OwnerKey("u1", "team")
    history = TimeSeriesHistory(
        [
            HistoryEntry(today - timedelta(days=8), owner, 4, 4),  # outside the week
            HistoryEntry(today - timedelta(days=1), owner, 2, 2),
            HistoryEntry(today, owner, 1, 1),
        ]
    )

    bumped = bump_activity(None, "u1", "Ann", T0)
    assert (bumped.task_completed_today, bumped.task_completed_this_week, bumped.current_streak) == (1, 1, 1)

    act = member_activity("u1", history, "team", today, member_name="Ann", last_active_at=T0)
    assert act.task_completed_today == 1
    assert act.task_completed_this_week == 3
    assert act.current_streak == 2
    assert act.to_document("team")["team_id"] == "team"
