# src/taskpulse/notifications/policy.py

"""
Notification timing and message selection.

Per tick:
- outside every enabled send window (or on a weekend without opt-in) -> no send;
- otherwise classify the trailing 7-day completion rate:
    rate < 0.3  -> intrinsic
    rate >= 0.7 -> extrinsic (achievement/extrinsic pool)
    otherwise   -> implementation
  and a streak of 3+ days overrides everything with achievement.

Classification is deterministic; the message within a family is random.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import StrEnum

from ..analytics.behavior import BehaviorPattern, peak_hour
from ..analytics.history import HistoryEntry, completion_rate
from ..analytics.streaks import current_streak
from ..core.clock import is_weekend
from ..errors import ValidationError
from .messages import DEFAULT_MESSAGE, MessageFamily, MotivationalMessage, pick_message

RATE_WINDOW_DAYS = 7
LOW_RATE = 0.3
HIGH_RATE = 0.7
STREAK_OVERRIDE_DAYS = 3

HistoryReader = Callable[[], Sequence[HistoryEntry]]


class SendWindow(StrEnum):
    MORNING = "morning"
    EVENING = "evening"


@dataclass(frozen=True, slots=True)
class TimeWindow:
    name: SendWindow
    start: time
    end: time

    def contains(self, moment: time) -> bool:
        # Half-open: [start, end)
        return self.start <= moment.replace(tzinfo=None) < self.end

    def hours(self) -> range:
        last = self.end.hour if self.end.minute == 0 else self.end.hour + 1
        return range(self.start.hour, last)


@dataclass(slots=True)
class NotificationPreferences:
    user_id: str
    morning_window: bool = True
    evening_window: bool = True
    weekend_notifications: bool = False
    preferred_times: list[str] = field(default_factory=list)  # "HH:MM"
    last_active_at: datetime | None = None

    def allows(self, window: SendWindow) -> bool:
        if window == SendWindow.MORNING:
            return self.morning_window
        return self.evening_window

    def preferred_clock_times(self) -> list[time]:
        times = []
        for raw in self.preferred_times:
            try:
                times.append(time.fromisoformat(raw))
            except ValueError:
                continue
        return sorted(times)


def parse_preferred_times(values: Iterable[str]) -> list[str]:
    """Validate "HH:MM" strings; returns them sorted without duplicates."""
    seen: set[str] = set()
    for raw in values:
        try:
            seen.add(time.fromisoformat(raw.strip()).strftime("%H:%M"))
        except ValueError:
            raise ValidationError(f"invalid time {raw!r} (expected HH:MM)") from None
    return sorted(seen)


@dataclass(frozen=True, slots=True)
class NotificationDecision:
    should_send: bool
    window: SendWindow | None = None
    family: MessageFamily | None = None
    message: MotivationalMessage | None = None
    reason: str = ""
    completion_rate: float | None = None
    streak: int | None = None
    send_at: datetime | None = None
    delivery_id: str | None = None


def classify(rate: float, streak: int) -> MessageFamily:
    if streak >= STREAK_OVERRIDE_DAYS:
        return MessageFamily.ACHIEVEMENT
    if rate < LOW_RATE:
        return MessageFamily.INTRINSIC
    if rate >= HIGH_RATE:
        return MessageFamily.EXTRINSIC
    return MessageFamily.IMPLEMENTATION


class NotificationPolicy:
    def __init__(
            self,
            *,
            morning: tuple[time, time] = (time(8, 0), time(10, 0)),
            evening: tuple[time, time] = (time(19, 0), time(21, 0)),
            rng: random.Random | None = None,
            logger: logging.Logger | None = None,
    ) -> None:
        self.windows = (
            TimeWindow(SendWindow.MORNING, *morning),
            TimeWindow(SendWindow.EVENING, *evening),
        )
        self._rng = rng or random.Random()
        self._log = logger or logging.getLogger(__name__)

    # ---- timing ----

    def _enabled(self, prefs: NotificationPreferences) -> list[TimeWindow]:
        return [w for w in self.windows if prefs.allows(w.name)]

    def eligible_window(self, now: datetime, prefs: NotificationPreferences) -> SendWindow | None:
        if is_weekend(now) and not prefs.weekend_notifications:
            return None
        for w in self._enabled(prefs):
            if w.contains(now.timetz()):
                return w.name
        return None

    def next_send_time(
            self,
            now: datetime,
            prefs: NotificationPreferences,
            pattern: BehaviorPattern | None = None,
    ) -> datetime | None:
        """
        Earliest moment >= now inside an enabled window.

        Inside a window -> now. Otherwise the earliest preferred time inside
        the next window, else its start moved to the pattern's most active
        hour in that window when it has one.
        """
        windows = sorted(self._enabled(prefs), key=lambda w: w.start)
        if not windows:
            return None

        for offset in range(0, 8):
            day: date = now.date() + timedelta(days=offset)
            if day.weekday() >= 5 and not prefs.weekend_notifications:
                continue
            for w in windows:
                start = datetime.combine(day, w.start, tzinfo=now.tzinfo)
                end = datetime.combine(day, w.end, tzinfo=now.tzinfo)
                if start <= now < end:
                    return now
                if start < now:
                    continue
                preferred = [t for t in prefs.preferred_clock_times() if w.contains(t)]
                if preferred:
                    return datetime.combine(day, preferred[0], tzinfo=now.tzinfo)
                if pattern is not None:
                    best = peak_hour(pattern, w.hours())
                    if best is not None:
                        aligned = datetime.combine(day, time(best, 0), tzinfo=now.tzinfo)
                        return max(aligned, start)
                return start
        return None

    # ---- message ----

    def build_message(
            self, today: date, read_history: HistoryReader
    ) -> tuple[MessageFamily, MotivationalMessage, float | None, int | None]:
        """
        Family + message from history. Never raises: any failure gives the
        default implementation message.
        """
        try:
            entries = list(read_history())
            rate = completion_rate(entries, today, RATE_WINDOW_DAYS)
            streak = current_streak(entries, today)
            family = classify(rate, streak)
            return family, pick_message(family, self._rng), rate, streak
        except Exception:
            self._log.exception("Building notification message failed; using default")
            return MessageFamily.IMPLEMENTATION, DEFAULT_MESSAGE, None, None

    def decide(
            self,
            now: datetime,
            prefs: NotificationPreferences,
            read_history: HistoryReader,
    ) -> NotificationDecision:
        window = self.eligible_window(now, prefs)
        if window is None:
            reason = (
                "weekend notifications disabled"
                if is_weekend(now) and not prefs.weekend_notifications
                else "outside notification windows"
            )
            return NotificationDecision(should_send=False, reason=reason)

        family, message, rate, streak = self.build_message(now.date(), read_history)
        return NotificationDecision(
            should_send=True,
            window=window,
            family=family,
            message=message,
            completion_rate=rate,
            streak=streak,
            send_at=now,
        )
