# tests/test_team_store.py

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from taskpulse.analytics.history import OwnerKey
from taskpulse.analytics.team_stats import recompute
from taskpulse.errors import RemoteUnavailable
from taskpulse.tasks.task_models import TaskStatus
from taskpulse.tasks.task_store import (
    ACTIVITY_COLLECTION,
    HISTORY_COLLECTION,
    STATS_COLLECTION,
    StoreMode,
    TeamTaskStore,
)

from .conftest import NOW
from .fakes import FakeRemoteStore


@pytest.mark.asyncio
async def test_team_add_defaults_assignee_and_scope(team_store: TeamTaskStore, remote: FakeRemoteStore) -> None:
    mine = await team_store.add({"title": "deploy"})
    theirs = await team_store.add({"title": "review", "assignee_id": "u2"})

    assert mine.assignee_id == "u1"
    assert mine.creator_id == "u1"
    assert mine.team_id == "t1"
    assert theirs.assignee_id == "u2"
    assert set(remote.docs("teamTasks")) == {mine.id, theirs.id}
    assert remote.docs("tasks") == {}
    assert team_store.stats.total_tasks == 2


@pytest.mark.asyncio
async def test_team_completion_updates_history_activity_and_stats(
    team_store: TeamTaskStore, remote: FakeRemoteStore
) -> None:
    task = await team_store.add({"title": "deploy"})
    await team_store.add({"title": "review"})

    await team_store.set_status(task.id, "completed")

    entry = team_store.history.get(NOW.date(), OwnerKey("u1", "t1"))
    assert entry is not None and entry.completed_tasks == 1
    assert team_store.history.get(NOW.date(), OwnerKey("u1")) is None

    [activity] = team_store.activities
    assert activity.member_name == "Ann"
    assert (activity.task_completed_today, activity.task_completed_this_week, activity.current_streak) == (1, 1, 1)

    stats = team_store.stats
    assert stats.completed_tasks == 1
    assert stats.team_completion_rate == 50.0

    [hist_doc] = remote.docs(HISTORY_COLLECTION).values()
    assert hist_doc["team_id"] == "t1"
    [stats_doc] = remote.docs(STATS_COLLECTION).values()
    assert stats_doc["completed_tasks"] == 1
    [act_doc] = remote.docs(ACTIVITY_COLLECTION).values()
    assert act_doc["member_id"] == "u1"


@pytest.mark.asyncio
async def test_stats_are_upserted_not_duplicated(team_store: TeamTaskStore, remote: FakeRemoteStore) -> None:
    a = await team_store.add({"title": "a"})
    b = await team_store.add({"title": "b"})

    await team_store.set_status(a.id, "in_progress")
    await team_store.set_status(b.id, "completed")

    assert len(remote.docs(STATS_COLLECTION)) == 1
    [doc] = remote.docs(STATS_COLLECTION).values()
    assert doc["in_progress_tasks"] == 1
    assert doc["completed_tasks"] == 1


@pytest.mark.asyncio
async def test_team_store_offline_still_tracks_stats(team_store: TeamTaskStore, remote: FakeRemoteStore) -> None:
    remote.fail = True
    with pytest.raises(RemoteUnavailable):
        await team_store.add({"title": "a"})

    [task] = team_store.list()
    await team_store.set_status(task.id, TaskStatus.COMPLETED)

    assert team_store.mode == StoreMode.LOCAL_FALLBACK
    assert team_store.stats.team_completion_rate == 100.0
    assert team_store.activities[0].task_completed_today == 1


@pytest.mark.asyncio
async def test_delete_does_not_decrement_activity(team_store: TeamTaskStore) -> None:
    task = await team_store.add({"title": "a"})
    await team_store.set_status(task.id, "completed")

    await team_store.delete(task.id)

    assert team_store.stats.total_tasks == 0
    assert team_store.activities[0].task_completed_today == 1
    assert team_store.history.get(NOW.date(), team_store.owner_key).completed_tasks == 1


@pytest.mark.asyncio
async def test_team_refresh_rebuilds_activity_for_members(
    team_store: TeamTaskStore, remote: FakeRemoteStore
) -> None:
    remote.seed("teamTasks", {"title": "x", "team_id": "t1", "owner_id": "u2", "status": "completed"})
    remote.seed(
        HISTORY_COLLECTION,
        {"date": "2026-10-14", "user_id": "u2", "team_id": "t1", "completed_tasks": 3, "total_tasks": 3},
    )

    await team_store.refresh()

    [task] = team_store.list()
    assert task.assignee_id == "u2"
    [activity] = team_store.activities
    assert (activity.member_id, activity.member_name, activity.task_completed_today) == ("u2", "Bob", 3)
    assert team_store.stats.member_contributions[0].member_id == "u2"


def test_team_store_requires_team_id(remote: FakeRemoteStore) -> None:
    with pytest.raises(ValueError):
        TeamTaskStore(remote, team_id="", user_id="u1")


@pytest.mark.asyncio
async def test_priority_and_assignee_edits_refresh_stats(team_store: TeamTaskStore, remote: FakeRemoteStore) -> None:
    task = await team_store.add({"title": "a"})
    await team_store.set_status(task.id, "in_progress")

    await team_store.update(task.id, {"priority": "high"})

    assert team_store.stats.tasks_by_priority == recompute("t1", team_store.list()).tasks_by_priority
    assert team_store.stats.tasks_by_priority["high"] == 1
    [doc] = remote.docs(STATS_COLLECTION).values()
    assert doc["tasks_by_priority"]["high"] == 1

    await team_store.set_status(task.id, "completed")
    await team_store.update(task.id, {"assignee_id": "u2"})

    assert [m.member_id for m in team_store.stats.member_contributions] == ["u2"]
    [doc] = remote.docs(STATS_COLLECTION).values()
    assert [m["member_id"] for m in doc["member_contributions"]] == ["u2"]


@pytest.mark.asyncio
async def test_title_edit_does_not_publish_stats(team_store: TeamTaskStore, remote: FakeRemoteStore) -> None:
    task = await team_store.add({"title": "a"})

    await team_store.update(task.id, {"title": "b"})

    assert remote.docs(STATS_COLLECTION) == {}
    assert team_store.stats.total_tasks == 1


@pytest.mark.asyncio
async def test_team_refresh_restores_last_active_from_remote(
    team_store: TeamTaskStore, remote: FakeRemoteStore
) -> None:
    seen = datetime(2026, 10, 13, 18, 30, tzinfo=timezone.utc)
    remote.seed(
        HISTORY_COLLECTION,
        {"date": "2026-10-13", "user_id": "u2", "team_id": "t1", "completed_tasks": 2, "total_tasks": 2},
    )
    remote.seed(ACTIVITY_COLLECTION, {"team_id": "t1", "member_id": "u2", "last_active_at": seen.isoformat()})
    remote.seed(ACTIVITY_COLLECTION, {"team_id": "t1", "member_id": "u1", "last_active_at": "yesterday-ish"})
    remote.seed(ACTIVITY_COLLECTION, {"team_id": "t2", "member_id": "u9", "last_active_at": seen.isoformat()})

    await team_store.refresh()

    by_member = {a.member_id: a for a in team_store.activities}
    assert set(by_member) == {"u1", "u2"}
    assert by_member["u2"].last_active_at == seen
    assert by_member["u2"].current_streak == 1
    assert by_member["u1"].last_active_at is None
    assert by_member["u1"].task_completed_this_week == 0
