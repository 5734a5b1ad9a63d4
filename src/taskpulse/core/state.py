# src/taskpulse/core/state.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from ..analytics.behavior import BehaviorAnalyzer
from ..analytics.history import OwnerKey, TimeSeriesHistory
from ..notifications.policy import NotificationPolicy
from ..notifications.scheduler import AdaptiveNotifier
from ..tasks.task_models import TeamTask
from ..tasks.task_store import Connectivity, TaskStore, TeamTaskStore
from .ports import Clock, NotificationSink


@dataclass
class AppState:
    """
    Everything one session works with.

    Both stores share the same Connectivity and TimeSeriesHistory, so a remote
    failure seen by one puts the whole session into local mode.
    """

    settings: Any

    clock: Clock
    connectivity: Connectivity
    history: TimeSeriesHistory
    tasks: TaskStore
    team: TeamTaskStore | None

    analyzer: BehaviorAnalyzer
    policy: NotificationPolicy
    sink: NotificationSink
    notifier: AdaptiveNotifier

    background: list[asyncio.Task[Any]] = field(default_factory=list)

    @property
    def user_id(self) -> str:
        return self.tasks.user_id

    @property
    def owner(self) -> OwnerKey:
        return self.tasks.owner_key

    def user_tasks(self, user_id: str) -> list:
        """Personal tasks plus team tasks assigned to user_id."""
        out = [t for t in self.tasks.list() if t.owner_id == user_id]
        if self.team is not None:
            out.extend(t for t in self.team.list() if isinstance(t, TeamTask) and t.assignee_id == user_id)
        return out
