# tests/test_notification_policy.py

from __future__ import annotations

import logging
import random
from datetime import date, datetime, timedelta, timezone

import pytest

from taskpulse.analytics.behavior import BehaviorPattern
from taskpulse.analytics.history import HistoryEntry, OwnerKey
from taskpulse.errors import ValidationError
from taskpulse.notifications.messages import (
    DEFAULT_MESSAGE,
    FAMILY_MESSAGES,
    MessageFamily,
    pick_message,
)
from taskpulse.notifications.policy import (
    NotificationPolicy,
    NotificationPreferences,
    SendWindow,
    classify,
    parse_preferred_times,
)

UTC = timezone.utc
WED = date(2026, 10, 14)
SAT = date(2026, 10, 17)
ME = OwnerKey("u1")


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


def _prefs(**kw) -> NotificationPreferences:
    return NotificationPreferences(user_id="u1", **kw)


def _entries(*rows: tuple[int, int, int]) -> list[HistoryEntry]:
    return [HistoryEntry(WED - timedelta(days=ago), ME, c, t) for ago, c, t in rows]


@pytest.fixture()
def policy() -> NotificationPolicy:
    return NotificationPolicy(rng=random.Random(7))


@pytest.mark.parametrize(
    ("rate", "streak", "family"),
    [
        (0.1, 0, MessageFamily.INTRINSIC),
        (0.29, 2, MessageFamily.INTRINSIC),
        (0.3, 0, MessageFamily.IMPLEMENTATION),
        (0.69, 1, MessageFamily.IMPLEMENTATION),
        (0.7, 0, MessageFamily.EXTRINSIC),
        (0.1, 3, MessageFamily.ACHIEVEMENT),
        (0.9, 5, MessageFamily.ACHIEVEMENT),
    ],
)
def test_classify(rate: float, streak: int, family: MessageFamily) -> None:
    assert classify(rate, streak) == family


def test_windows_are_half_open(policy: NotificationPolicy) -> None:
    prefs = _prefs()
    assert policy.eligible_window(_at(WED, 8), prefs) == SendWindow.MORNING
    assert policy.eligible_window(_at(WED, 9, 59), prefs) == SendWindow.MORNING
    assert policy.eligible_window(_at(WED, 10), prefs) is None
    assert policy.eligible_window(_at(WED, 12), prefs) is None
    assert policy.eligible_window(_at(WED, 19, 30), prefs) == SendWindow.EVENING
    assert policy.eligible_window(_at(WED, 21), prefs) is None


def test_window_and_weekend_preferences(policy: NotificationPolicy) -> None:
    assert policy.eligible_window(_at(WED, 9), _prefs(morning_window=False)) is None
    assert policy.eligible_window(_at(SAT, 9), _prefs()) is None
    assert policy.eligible_window(_at(SAT, 9), _prefs(weekend_notifications=True)) == SendWindow.MORNING


def test_decide_outside_window_does_not_read_history(policy: NotificationPolicy) -> None:
    def boom():
        raise AssertionError("history must not be read")

    d = policy.decide(_at(WED, 13), _prefs(), boom)
    assert d.should_send is False
    assert d.reason == "outside notification windows"

    d = policy.decide(_at(SAT, 9), _prefs(), boom)
    assert d.should_send is False
    assert d.reason == "weekend notifications disabled"


def test_decide_low_rate_is_intrinsic(policy: NotificationPolicy) -> None:
    d = policy.decide(_at(WED, 9), _prefs(), lambda: _entries((0, 1, 5)))

    assert d.should_send is True
    assert d.window == SendWindow.MORNING
    assert d.family == MessageFamily.INTRINSIC
    assert d.message in FAMILY_MESSAGES[MessageFamily.INTRINSIC]
    assert d.completion_rate == pytest.approx(0.2)
    assert d.streak == 1


def test_decide_high_rate_uses_extrinsic_pool(policy: NotificationPolicy) -> None:
    d = policy.decide(_at(WED, 20), _prefs(), lambda: _entries((0, 4, 5)))

    assert d.family == MessageFamily.EXTRINSIC
    assert d.message.family in (MessageFamily.EXTRINSIC, MessageFamily.ACHIEVEMENT)


def test_streak_overrides_rate(policy: NotificationPolicy) -> None:
    d = policy.decide(_at(WED, 9), _prefs(), lambda: _entries((0, 1, 4), (1, 1, 4), (2, 1, 4)))

    assert d.streak == 3
    assert d.family == MessageFamily.ACHIEVEMENT
    assert d.message in FAMILY_MESSAGES[MessageFamily.ACHIEVEMENT]


def test_history_failure_falls_back_to_default_message(caplog) -> None:
    policy = NotificationPolicy(logger=logging.getLogger("test.policy"))

    def broken():
        raise RuntimeError("history unavailable")

    with caplog.at_level(logging.ERROR, logger="test.policy"):
        d = policy.decide(_at(WED, 9), _prefs(), broken)

    assert d.should_send is True
    assert d.message == DEFAULT_MESSAGE
    assert d.message.title == "Let's get back to your tasks!"
    assert d.family == MessageFamily.IMPLEMENTATION
    assert caplog.records


def test_pick_message_stays_in_family() -> None:
    rng = random.Random(1)
    for family in MessageFamily:
        for _ in range(10):
            assert pick_message(family, rng) in FAMILY_MESSAGES[family]
        assert len(FAMILY_MESSAGES[family]) >= 3


def test_next_send_time(policy: NotificationPolicy) -> None:
    prefs = _prefs()
    assert policy.next_send_time(_at(WED, 9), prefs) == _at(WED, 9)
    assert policy.next_send_time(_at(WED, 12), prefs) == _at(WED, 19)
    assert policy.next_send_time(_at(WED, 22), prefs) == _at(WED + timedelta(days=1), 8)

    fri_night = _at(date(2026, 10, 16), 22)
    assert policy.next_send_time(fri_night, prefs) == _at(date(2026, 10, 19), 8)
    assert policy.next_send_time(fri_night, _prefs(weekend_notifications=True)) == _at(SAT, 8)

    off = _prefs(morning_window=False, evening_window=False)
    assert policy.next_send_time(_at(WED, 9), off) is None


def test_next_send_time_aligns_to_peak_hour(policy: NotificationPolicy) -> None:
    hourly = [0.0] * 24
    hourly[9] = 1.0
    hourly[20] = 0.5
    pattern = BehaviorPattern(user_id="u1", hourly_activity=tuple(hourly), daily_activity=(0.0,) * 7)

    assert policy.next_send_time(_at(WED, 22), _prefs(), pattern) == _at(WED + timedelta(days=1), 9)
    assert policy.next_send_time(_at(WED, 12), _prefs(), pattern) == _at(WED, 20)


def test_preferred_time_inside_window_wins_over_peak_hour(policy: NotificationPolicy) -> None:
    hourly = [0.0] * 24
    hourly[9] = 1.0
    pattern = BehaviorPattern(user_id="u1", hourly_activity=tuple(hourly), daily_activity=(0.0,) * 7)
    prefs = _prefs(preferred_times=["08:45", "12:00", "19:30"])

    assert policy.next_send_time(_at(WED, 22), prefs, pattern) == _at(WED + timedelta(days=1), 8, 45)
    assert policy.next_send_time(_at(WED, 12), prefs, pattern) == _at(WED, 19, 30)
    # 12:00 is outside both windows and never used on its own.
    assert policy.next_send_time(_at(WED, 12), _prefs(preferred_times=["12:00"])) == _at(WED, 19)


def test_parse_preferred_times() -> None:
    assert parse_preferred_times(["19:30", " 08:00", "19:30"]) == ["08:00", "19:30"]
    with pytest.raises(ValidationError):
        parse_preferred_times(["8pm"])
