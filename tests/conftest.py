# tests/conftest.py

from __future__ import annotations

from datetime import datetime, time, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskpulse.analytics.history import TimeSeriesHistory
from taskpulse.cli.bootstrap import create_state
from taskpulse.core.state import AppState
from taskpulse.tasks.task_store import TaskStore, TeamTaskStore

from .fakes import FakeRemoteStore, FixedClock, RecordingSink

# Wednesday, inside the morning window.
NOW = datetime(2026, 10, 14, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture()
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def history() -> TimeSeriesHistory:
    return TimeSeriesHistory()


@pytest.fixture()
def store(remote: FakeRemoteStore, history: TimeSeriesHistory, clock: FixedClock) -> TaskStore:
    return TaskStore(remote, user_id="u1", history=history, clock=clock, timeout_seconds=0.2)


@pytest.fixture()
def team_store(remote: FakeRemoteStore, history: TimeSeriesHistory, clock: FixedClock) -> TeamTaskStore:
    return TeamTaskStore(
        remote,
        team_id="t1",
        user_id="u1",
        member_names={"u1": "Ann", "u2": "Bob"},
        history=history,
        clock=clock,
        timeout_seconds=0.2,
    )


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with create_state().

    A SimpleNamespace rather than real config keeps tests independent of the
    environment.
    """
    return SimpleNamespace(
        app_name="taskpulse-test",
        data_dir=tmp_path,
        user_id="u1",
        member_name="Ann",
        team_id="t1",
        remote_url="",
        remote_timeout_seconds=0.2,
        morning_window=(time(8, 0), time(10, 0)),
        evening_window=(time(19, 0), time(21, 0)),
        weekend_notifications=False,
    )


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def state(settings: SimpleNamespace, remote: FakeRemoteStore, sink: RecordingSink, clock: FixedClock) -> AppState:
    return create_state(settings=settings, remote=remote, sink=sink, clock=clock)
