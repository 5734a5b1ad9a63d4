# src/taskpulse/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (remote store, stores,
  notification policy / notifier / sink).
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..analytics.behavior import BehaviorAnalyzer, events_from_tasks
from ..analytics.history import OwnerKey, TimeSeriesHistory
from ..config import get_settings
from ..core.clock import SystemClock
from ..core.ports import Clock, NotificationSink, RemoteDocumentStore
from ..core.state import AppState
from ..notifications.policy import NotificationPolicy
from ..notifications.scheduler import AdaptiveNotifier, PreferencesRepo
from ..notifications.sinks import ConsoleNotificationSink
from ..remote.offline import OfflineDocumentStore
from ..remote.pocketbase import PocketBaseDocumentStore
from ..tasks.task_store import Connectivity, TaskStore, TeamTaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)


def build_remote(settings) -> RemoteDocumentStore:
    if not settings.remote_enabled:
        logger.info("No remote store configured; running local-only")
        return OfflineDocumentStore("no remote store configured")
    return PocketBaseDocumentStore(
        settings.remote_url,
        token=settings.remote_token or None,
        identity=settings.remote_identity or None,
        password=settings.remote_password or None,
        http_timeout=settings.remote_timeout_seconds,
    )


async def build_sink(settings, write: Callable[[str], None] = print) -> NotificationSink:
    """Matrix room when enabled and reachable, the console otherwise."""
    if settings.matrix_enabled and settings.matrix_room_id:
        from ..connectors.matrix_client import create_matrix_client
        from ..connectors.matrix_sink import MatrixNotificationSink

        client = await create_matrix_client(settings)
        if client is not None:
            logger.info("Notifications go to Matrix room %s", settings.matrix_room_id)
            return MatrixNotificationSink(client, settings.matrix_room_id)
        logger.warning("Matrix unavailable; notifications fall back to the console")
    return ConsoleNotificationSink(write)


def create_state(
        *,
        settings=None,
        remote: RemoteDocumentStore | None = None,
        sink: NotificationSink | None = None,
        clock: Clock | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    remote / sink / clock are injectable for tests; defaults come from settings.
    """
    if settings is None:
        settings = get_settings()

    clock = clock or SystemClock()
    remote = remote if remote is not None else build_remote(settings)
    connectivity = Connectivity()
    history = TimeSeriesHistory()
    timeout = float(getattr(settings, "remote_timeout_seconds", 10.0))

    tasks = TaskStore(
        remote,
        user_id=settings.user_id,
        history=history,
        connectivity=connectivity,
        clock=clock,
        timeout_seconds=timeout,
    )

    team: TeamTaskStore | None = None
    if settings.team_id:
        team = TeamTaskStore(
            remote,
            team_id=settings.team_id,
            user_id=settings.user_id,
            member_names={settings.user_id: settings.member_name},
            history=history,
            connectivity=connectivity,
            clock=clock,
            timeout_seconds=timeout,
        )

    analyzer = BehaviorAnalyzer()
    policy = NotificationPolicy(morning=settings.morning_window, evening=settings.evening_window)
    sink = sink if sink is not None else ConsoleNotificationSink()

    state: AppState

    def read_history(user_id: str):
        return history.all_entries(OwnerKey(user_id))

    def read_events(user_id: str):
        return events_from_tasks(state.user_tasks(user_id))

    notifier = AdaptiveNotifier(
        policy,
        sink,
        read_history,
        analyzer=analyzer,
        events_reader=read_events,
        preferences=PreferencesRepo(weekend_notifications=settings.weekend_notifications),
        clock=clock,
    )

    state = AppState(
        settings=settings,
        clock=clock,
        connectivity=connectivity,
        history=history,
        tasks=tasks,
        team=team,
        analyzer=analyzer,
        policy=policy,
        sink=sink,
        notifier=notifier,
    )
    return state


async def create_initial_state(*, settings=None) -> AppState:
    """Settings-driven AppState for the real app (dirs, remote, sink)."""
    if settings is None:
        settings = get_settings()
    _ensure_local_dirs(settings)
    sink = await build_sink(settings)
    return create_state(settings=settings, sink=sink)
