# tests/test_config_and_seed.py

from __future__ import annotations

import os
import random
from datetime import date, time

import pytest

from taskpulse.analytics.history import OwnerKey, TimeSeriesHistory
from taskpulse.config import Settings
from taskpulse.devtools.seed import random_history, seed_history

TODAY = date(2026, 10, 14)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in list(os.environ):
        if key.startswith("TASKPULSE_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_settings_defaults(clean_env: pytest.MonkeyPatch) -> None:
    s = Settings.from_env()

    assert s.user_id == "local-user"
    assert s.team_id == ""
    assert s.remote_enabled is False
    assert s.remote_timeout_seconds == 10.0
    assert s.morning_window == (time(8, 0), time(10, 0))
    assert s.evening_window == (time(19, 0), time(21, 0))
    assert s.weekend_notifications is False
    assert s.matrix_store_path == s.data_dir / "matrix_store"


def test_settings_from_environment(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("TASKPULSE_USER_ID", "ann")
    clean_env.setenv("TASKPULSE_TEAM_ID", "t1")
    clean_env.setenv("TASKPULSE_REMOTE_URL", "http://pb.local")
    clean_env.setenv("TASKPULSE_REMOTE_TIMEOUT_SECONDS", "2.5")
    clean_env.setenv("TASKPULSE_MORNING_WINDOW", "07:30-09:00")
    clean_env.setenv("TASKPULSE_EVENING_WINDOW", "22:00-20:00")  # invalid, default kept
    clean_env.setenv("TASKPULSE_WEEKEND_NOTIFICATIONS", "yes")

    s = Settings.from_env()

    assert (s.user_id, s.team_id) == ("ann", "t1")
    assert s.remote_enabled is True
    assert s.remote_timeout_seconds == 2.5
    assert s.morning_window == (time(7, 30), time(9, 0))
    assert s.evening_window == (time(19, 0), time(21, 0))
    assert s.weekend_notifications is True


def test_random_history_is_reproducible_and_bounded() -> None:
    owner = OwnerKey("u1")
    a = random_history(owner, TODAY, days=14, rng=random.Random(42))
    b = random_history(owner, TODAY, days=14, rng=random.Random(42))

    assert a == b
    assert len({e.day for e in a}) == len(a) <= 14
    for e in a:
        assert 1 <= e.total_tasks <= 5
        assert 0 <= e.completed_tasks <= e.total_tasks
        assert (TODAY - e.day).days < 14


def test_seed_history_merges_rows() -> None:
    history = TimeSeriesHistory()
    n = seed_history(history, OwnerKey("u1"), TODAY, rng=random.Random(5))
    assert len(history) == n
