# src/taskpulse/notifications/scheduler.py

"""
Adaptive notification scheduler.

A small polling loop that, per user and tick:
- asks the policy whether now is inside a send window,
- builds a message from the user's completion history,
- hands it to the injected NotificationSink.

Transport details (console line, Matrix room, push) belong to the sink.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import datetime

from ..analytics.behavior import BehaviorAnalyzer, BehaviorPattern, CompletionEvent
from ..analytics.history import HistoryEntry
from ..core.clock import SystemClock
from ..core.ports import Clock, NotificationSink
from .policy import NotificationDecision, NotificationPolicy, NotificationPreferences

logger = logging.getLogger(__name__)

# Anything closer than this is sent right away instead of being scheduled.
IMMEDIATE_THRESHOLD_SECONDS = 10.0

UserHistoryReader = Callable[[str], Sequence[HistoryEntry]]
UserEventsReader = Callable[[str], Iterable[CompletionEvent]]


class PreferencesRepo:
    """In-process notification preferences; unknown users get the defaults."""

    def __init__(self, *, weekend_notifications: bool = False) -> None:
        self._weekend_default = weekend_notifications
        self._prefs: dict[str, NotificationPreferences] = {}

    def get(self, user_id: str) -> NotificationPreferences:
        prefs = self._prefs.get(user_id)
        if prefs is None:
            prefs = NotificationPreferences(user_id=user_id, weekend_notifications=self._weekend_default)
            self._prefs[user_id] = prefs
        return prefs

    def save(self, prefs: NotificationPreferences) -> None:
        self._prefs[prefs.user_id] = prefs

    def mark_active(self, user_id: str, when: datetime) -> NotificationPreferences:
        prefs = self.get(user_id)
        prefs.last_active_at = when
        self.save(prefs)
        return prefs


class AdaptiveNotifier:
    def __init__(
            self,
            policy: NotificationPolicy,
            sink: NotificationSink,
            history_reader: UserHistoryReader,
            *,
            analyzer: BehaviorAnalyzer | None = None,
            events_reader: UserEventsReader | None = None,
            preferences: PreferencesRepo | None = None,
            clock: Clock | None = None,
            logger: logging.Logger | None = None,
    ) -> None:
        self.policy = policy
        self.sink = sink
        self.preferences = preferences or PreferencesRepo()
        self._read_history = history_reader
        self._read_events = events_reader
        self._analyzer = analyzer or BehaviorAnalyzer()
        self._clock = clock or SystemClock()
        self._log = logger or logging.getLogger(__name__)

    def pattern_for(self, user_id: str) -> BehaviorPattern:
        history = list(self._read_history(user_id))
        events = list(self._read_events(user_id)) if self._read_events else []
        return self._analyzer.analyze(user_id, history, events)

    async def _send(self, decision: NotificationDecision, user_id: str, delay: float | None) -> str | None:
        msg = decision.message
        if msg is None:
            return None
        data = {
            "type": "motivation",
            "user_id": user_id,
            "family": msg.family.value,
        }
        try:
            return await self.sink.schedule_notification(msg.title, msg.body, data, delay)
        except Exception:
            self._log.exception("Notification sink failed user=%s", user_id)
            return None

    async def tick(self, user_id: str, now: datetime | None = None) -> NotificationDecision:
        """One scheduler pass for one user: decide, then send now if eligible."""
        now = now or self._clock.now()
        prefs = self.preferences.get(user_id)
        decision = self.policy.decide(now, prefs, lambda: self._read_history(user_id))
        if not decision.should_send:
            self._log.debug("No notification user=%s: %s", user_id, decision.reason)
            return decision

        delivery_id = await self._send(decision, user_id, None)
        if delivery_id is not None:
            self._log.info(
                "Notification sent user=%s window=%s family=%s",
                user_id,
                decision.window,
                decision.family,
            )
        return replace(decision, delivery_id=delivery_id)

    async def schedule_adaptive(self, user_id: str) -> NotificationDecision:
        """
        Plan the next notification at the best time for the user's pattern.

        The send time is the earliest allowed window moment, aligned to the most
        active hour in that window when the pattern has one. A delay under
        IMMEDIATE_THRESHOLD_SECONDS is delivered immediately.
        """
        now = self._clock.now()
        prefs = self.preferences.get(user_id)
        pattern = self.pattern_for(user_id)
        send_at = self.policy.next_send_time(now, prefs, pattern)
        if send_at is None:
            return NotificationDecision(should_send=False, reason="no notification window enabled")

        family, message, rate, streak = self.policy.build_message(
            send_at.date(), lambda: self._read_history(user_id)
        )
        delay = (send_at - now).total_seconds()
        decision = NotificationDecision(
            should_send=True,
            family=family,
            message=message,
            completion_rate=rate,
            streak=streak,
            send_at=send_at,
        )
        delivery_id = await self._send(decision, user_id, None if delay < IMMEDIATE_THRESHOLD_SECONDS else delay)
        self._log.info("Adaptive notification user=%s at=%s delay=%.0fs", user_id, send_at.isoformat(), delay)
        return replace(decision, delivery_id=delivery_id)


async def run_notification_scheduler(
        notifier: AdaptiveNotifier,
        user_ids: Callable[[], Iterable[str]],
        *,
        interval_seconds: float = 3600.0,
) -> None:
    """
    Simple polling scheduler.

    Every interval_seconds, tick every known user. A failing user never stops
    the loop. To stop the scheduler, cancel the coroutine/task.
    """
    sleep_s = max(0.5, float(interval_seconds))

    while True:
        try:
            users = list(user_ids())
        except Exception:
            logger.exception("Listing notification users failed")
            users = []

        for user_id in users:
            try:
                await notifier.tick(user_id)
            except Exception:
                logger.exception("Notification tick failed user=%s", user_id)

        await asyncio.sleep(sleep_s)
