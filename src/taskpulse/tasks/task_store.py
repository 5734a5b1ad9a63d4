# src/taskpulse/tasks/task_store.py

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import replace
from datetime import datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from ..analytics.history import HistoryEntry, OwnerKey, TimeSeriesHistory
from ..analytics.team_stats import (
    MemberActivity,
    TeamStats,
    bump_activity,
    member_activity,
    recompute,
)
from ..core.clock import SystemClock
from ..core.ports import Clock, RemoteDocumentStore
from ..errors import NotFound, RemoteUnavailable
from .task_models import (
    EDITABLE_FIELDS,
    TEAM_EDITABLE_FIELDS,
    Task,
    TaskStatus,
    TeamTask,
    apply_patch,
    normalize_new,
    normalize_patch,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Task)
R = TypeVar("R")

LOCAL_ID_PREFIX = "local-"
DEFAULT_REMOTE_TIMEOUT = 10.0

HISTORY_COLLECTION = "completions"
STATS_COLLECTION = "teamStats"
ACTIVITY_COLLECTION = "teamMemberActivities"

# Fields that feed TeamStats besides status.
STATS_FIELDS = frozenset({"priority", "assignee_id"})


def is_local_id(task_id: str) -> bool:
    return task_id.startswith(LOCAL_ID_PREFIX)


class StoreMode(StrEnum):
    REMOTE = "remote"
    LOCAL_FALLBACK = "local_fallback"


class Connectivity:
    """
    REMOTE -> LOCAL_FALLBACK switch, shared by every store of a session.

    The transition happens at most once and is never undone for the lifetime
    of the object (no automatic recovery).
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._mode = StoreMode.REMOTE
        self._reason: str | None = None
        self._log = logger or logging.getLogger(__name__)

    @property
    def mode(self) -> StoreMode:
        return self._mode

    @property
    def is_remote(self) -> bool:
        return self._mode == StoreMode.REMOTE

    @property
    def reason(self) -> str | None:
        return self._reason

    def mark_unavailable(self, reason: str) -> bool:
        """Switch to local mode. Returns True only for the call that flipped it."""
        if self._mode == StoreMode.LOCAL_FALLBACK:
            return False
        self._mode = StoreMode.LOCAL_FALLBACK
        self._reason = reason
        self._log.warning("Remote store unavailable, switching to local mode: %s", reason)
        return True


class LocalMirror(Generic[T]):
    """
    In-memory copy of a store's tasks.

    In REMOTE mode it mirrors what the remote store holds (read-your-writes);
    in LOCAL_FALLBACK mode it is the only copy. Local ids are
    "local-<kind>-<n>" and never collide with remote-issued ids.
    """

    def __init__(self, kind: str = "task") -> None:
        self._kind = kind
        self._items: dict[str, T] = {}
        self._counter = itertools.count(1)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._items

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))

    def next_local_id(self) -> str:
        while True:
            candidate = f"{LOCAL_ID_PREFIX}{self._kind}-{next(self._counter)}"
            if candidate not in self._items:
                return candidate

    def get(self, task_id: str) -> T | None:
        return self._items.get(task_id)

    def put(self, task: T) -> None:
        self._items[task.id] = task

    def pop(self, task_id: str) -> T | None:
        return self._items.pop(task_id, None)

    def replace_all(self, tasks: list[T]) -> None:
        self._items = {t.id: t for t in tasks}

    def newest_first(self) -> list[T]:
        indexed = list(enumerate(self._items.values()))
        indexed.sort(key=lambda it: (it[1].created_at, it[0]), reverse=True)
        return [t for _, t in indexed]


def _ignore_late_result(fut: asyncio.Future[Any]) -> None:
    # Late completions after a timeout are not applied; just consume the outcome.
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        logger.debug("Late remote call failed after timeout: %r", exc)
    else:
        logger.debug("Late remote call finished after timeout; result ignored")


class TaskStore(Generic[T]):
    """
    Personal task store with remote/local failover.

    Contract:
    - add/update/delete/set_status always apply to the local mirror, so list()
      reflects this store's own writes in both modes.
    - A remote failure (error or timeout) flips Connectivity to LOCAL_FALLBACK
      for good, keeps the mutation locally and raises RemoteUnavailable
      ("fail loud, don't lose data").
    - update/delete/set_status on an id the mirror does not know are no-ops
      (logged at DEBUG, never raised).
    - Only a pending/in_progress -> completed transition records a history
      completion; completed -> completed does not.
    """

    collection = "tasks"
    mirror_kind = "task"
    editable_fields = EDITABLE_FIELDS

    def __init__(
            self,
            remote: RemoteDocumentStore,
            *,
            user_id: str,
            history: TimeSeriesHistory | None = None,
            connectivity: Connectivity | None = None,
            clock: Clock | None = None,
            timeout_seconds: float = DEFAULT_REMOTE_TIMEOUT,
            logger: logging.Logger | None = None,
    ) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        self._remote_store = remote
        self._user_id = user_id
        self._history = history if history is not None else TimeSeriesHistory()
        self._log = logger or logging.getLogger(__name__)
        self._conn = connectivity if connectivity is not None else Connectivity(logger=self._log)
        self._clock: Clock = clock or SystemClock()
        self._timeout = max(0.01, float(timeout_seconds))
        self._mirror: LocalMirror[T] = LocalMirror(self.mirror_kind)

    # ---- properties ----

    @property
    def mode(self) -> StoreMode:
        return self._conn.mode

    @property
    def connectivity(self) -> Connectivity:
        return self._conn

    @property
    def history(self) -> TimeSeriesHistory:
        return self._history

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def owner_key(self) -> OwnerKey:
        return OwnerKey(self._user_id)

    # ---- hooks for subclasses ----

    def _scope_filters(self) -> dict[str, Any]:
        return {"owner_id": self._user_id}

    def _history_filters(self) -> dict[str, Any]:
        return self.owner_key.filters()

    def _normalize_new(self, data: Mapping[str, Any], now: datetime) -> dict[str, Any]:
        return normalize_new(data, now=now)

    def _build(self, task_id: str, fields: dict[str, Any], now: datetime) -> T:
        completed_at = now if fields["status"] == TaskStatus.COMPLETED else None
        task = Task(
            id=task_id,
            owner_id=self._user_id,
            created_at=now,
            updated_at=now,
            completed_at=completed_at,
            **fields,
        )
        return task  # type: ignore[return-value]

    def _from_document(self, doc_id: str, doc: Mapping[str, Any]) -> T:
        return Task.from_document(doc_id, doc)  # type: ignore[return-value]

    async def _after_status_change(self, before: T, after: T) -> None:
        return None

    # ---- remote plumbing ----

    async def _remote(self, operation: str, call: Callable[[], Awaitable[R]]) -> R:
        """
        Run one remote call with a bounded wait.

        On timeout the in-flight call is shielded (not cancelled); its late
        result is ignored. Any failure flips the store to local mode.
        """
        if not self._conn.is_remote:
            raise RemoteUnavailable("remote store disabled (local mode)", operation=operation)

        pending = asyncio.ensure_future(call())
        try:
            return await asyncio.wait_for(asyncio.shield(pending), timeout=self._timeout)
        except asyncio.TimeoutError:
            pending.add_done_callback(_ignore_late_result)
            message = f"{operation} timed out after {self._timeout:g}s"
        except RemoteUnavailable as e:
            message = f"{operation} failed: {e}"
        except Exception as e:
            # Network, permission and protocol errors are all "remote unavailable".
            message = f"{operation} failed: {e!r}"

        self._conn.mark_unavailable(message)
        raise RemoteUnavailable(message, operation=operation)

    # ---- reads ----

    def list(self) -> list[T]:
        """All known tasks, newest-created first."""
        return self._mirror.newest_first()

    def get(self, task_id: str) -> T:
        task = self._mirror.get(task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    async def refresh(self) -> None:
        """
        Re-read tasks and completion history from the remote store.

        No-op in local mode. On failure the mirror is left untouched and
        RemoteUnavailable is raised.
        """
        if not self._conn.is_remote:
            self._log.debug("refresh skipped (local mode) collection=%s", self.collection)
            return

        rows = await self._remote(
            "query",
            lambda: self._remote_store.query(self.collection, self._scope_filters(), "-created_at"),
        )
        tasks = [self._from_document(doc_id, doc) for doc_id, doc in rows]
        self._mirror.replace_all(tasks)

        history_rows = await self._remote(
            "query",
            lambda: self._remote_store.query(HISTORY_COLLECTION, self._history_filters(), "date"),
        )
        merged = 0
        for _, doc in history_rows:
            try:
                self._history.merge(HistoryEntry.from_document(doc))
                merged += 1
            except (KeyError, ValueError):
                self._log.warning("Skipping malformed history document: %r", doc)

        self._log.info(
            "Refreshed collection=%s tasks=%d history_rows=%d", self.collection, len(tasks), merged
        )

    # ---- writes ----

    async def add(self, data: Mapping[str, Any]) -> T:
        """
        Create a task.

        Raises ValidationError (no mutation) for bad input. Raises
        RemoteUnavailable after keeping the task locally under a local id.
        """
        now = self._clock.now()
        fields = self._normalize_new(data, now)

        if not self._conn.is_remote:
            task = self._build(self._mirror.next_local_id(), fields, now)
            self._mirror.put(task)
            self._log.debug("Task added locally id=%s", task.id)
            return task

        draft = self._build("", fields, now)
        try:
            new_id = await self._remote(
                "insert",
                lambda: self._remote_store.insert(self.collection, draft.to_document()),
            )
        except RemoteUnavailable:
            task = replace(draft, id=self._mirror.next_local_id())
            self._mirror.put(task)
            self._log.warning("Task kept locally after remote failure id=%s title=%r", task.id, task.title)
            raise

        task = replace(draft, id=str(new_id))
        self._mirror.put(task)
        self._log.debug("Task added id=%s status=%s", task.id, task.status.value)
        return task

    async def update(self, task_id: str, partial: Mapping[str, Any]) -> None:
        patch = normalize_patch(partial, allowed=self.editable_fields)
        result = await self._apply(task_id, patch)
        if result is None:
            return
        before, after, error = result
        if "status" in patch:
            await self._status_side_effects(before, after)
        if error is not None:
            raise error

    async def set_status(self, task_id: str, status: TaskStatus | str) -> None:
        await self.update(task_id, {"status": TaskStatus.parse(status)})

    async def delete(self, task_id: str) -> None:
        """Remove a task. History rows are kept (completions are never un-counted)."""
        if task_id not in self._mirror:
            self._log.debug("delete ignored, unknown id=%s", task_id)
            return

        error: RemoteUnavailable | None = None
        if self._conn.is_remote:
            try:
                await self._remote("delete", lambda: self._remote_store.delete(self.collection, task_id))
            except RemoteUnavailable as e:
                error = e

        self._mirror.pop(task_id)
        self._log.debug("Task deleted id=%s", task_id)
        if error is not None:
            raise error

    # ---- internals ----

    async def _apply(
            self, task_id: str, patch: dict[str, Any]
    ) -> tuple[T, T, RemoteUnavailable | None] | None:
        """Apply a validated patch locally (always) and remotely (when possible)."""
        current = self._mirror.get(task_id)
        if current is None:
            self._log.debug("update ignored, unknown id=%s", task_id)
            return None
        if not patch:
            return current, current, None

        updated = apply_patch(current, patch, now=self._clock.now())
        error: RemoteUnavailable | None = None

        if self._conn.is_remote:
            doc = updated.to_document()
            wire = {k: doc[k] for k in (*patch, "updated_at", "completed_at")}
            try:
                await self._remote(
                    "update", lambda: self._remote_store.update(self.collection, task_id, wire)
                )
            except RemoteUnavailable as e:
                error = e

        self._mirror.put(updated)
        return current, updated, error

    async def _status_side_effects(self, before: T, after: T) -> None:
        if before.status != TaskStatus.COMPLETED and after.status == TaskStatus.COMPLETED:
            await self._on_completed(after)
        await self._after_status_change(before, after)

    async def _on_completed(self, task: T) -> None:
        today = self._clock.now().date()
        entry = self._history.record_completion(today, self.owner_key)
        await self._sync_history(entry)

    async def _sync_history(self, entry: HistoryEntry) -> None:
        """Upsert the remote history row. Failures are logged, never raised."""
        if not self._conn.is_remote:
            return
        key = {"date": entry.day.isoformat(), **entry.owner.filters()}
        try:
            rows = await self._remote(
                "query", lambda: self._remote_store.query(HISTORY_COLLECTION, key)
            )
            if rows:
                doc_id, doc = rows[0]
                remote_entry = HistoryEntry.from_document(doc)
                synced = replace(
                    remote_entry,
                    completed_tasks=remote_entry.completed_tasks + 1,
                    total_tasks=remote_entry.total_tasks + 1,
                )
                patch = {
                    "completed_tasks": synced.completed_tasks,
                    "total_tasks": synced.total_tasks,
                }
                await self._remote(
                    "update", lambda: self._remote_store.update(HISTORY_COLLECTION, doc_id, patch)
                )
                self._history.merge(synced)
            else:
                await self._remote(
                    "insert", lambda: self._remote_store.insert(HISTORY_COLLECTION, entry.to_document())
                )
        except RemoteUnavailable:
            self._log.warning("History sync failed owner=%s day=%s; kept locally", entry.owner, entry.day)
        except (KeyError, ValueError):
            self._log.exception("Malformed remote history row owner=%s day=%s", entry.owner, entry.day)


class TeamTaskStore(TaskStore[TeamTask]):
    """
    Team task store.

    Adds team stats and member activity rollups on top of TaskStore:
    - every change to status, priority or assignee recomputes TeamStats from
      the current task list;
    - a completion bumps the acting member's counters optimistically, then
      reconciles them from the team-scoped history.
    Both are published to the remote store best-effort (logged on failure).
    """

    collection = "teamTasks"
    mirror_kind = "team-task"
    editable_fields = TEAM_EDITABLE_FIELDS

    def __init__(
            self,
            remote: RemoteDocumentStore,
            *,
            team_id: str,
            user_id: str,
            member_names: Mapping[str, str] | None = None,
            **kwargs: Any,
    ) -> None:
        if not team_id:
            raise ValueError("team_id is required")
        super().__init__(remote, user_id=user_id, **kwargs)
        self._team_id = team_id
        self._member_names: dict[str, str] = dict(member_names or {})
        self._stats: TeamStats | None = None
        self._activities: dict[str, MemberActivity] = {}

    @property
    def team_id(self) -> str:
        return self._team_id

    @property
    def owner_key(self) -> OwnerKey:
        return OwnerKey(self._user_id, self._team_id)

    @property
    def stats(self) -> TeamStats:
        if self._stats is None:
            self._stats = recompute(self._team_id, self._mirror, self._member_names, self._clock.now())
        return self._stats

    @property
    def activities(self) -> list[MemberActivity]:
        return sorted(self._activities.values(), key=lambda a: a.member_id)

    def member_name(self, member_id: str) -> str:
        return self._member_names.get(member_id, member_id)

    # ---- hooks ----

    def _scope_filters(self) -> dict[str, Any]:
        return {"team_id": self._team_id}

    def _history_filters(self) -> dict[str, Any]:
        return {"team_id": self._team_id}

    def _normalize_new(self, data: Mapping[str, Any], now: datetime) -> dict[str, Any]:
        fields = normalize_new(data, now=now)
        fields["assignee_id"] = str(data.get("assignee_id") or "").strip() or self._user_id
        return fields

    def _build(self, task_id: str, fields: dict[str, Any], now: datetime) -> TeamTask:
        values = dict(fields)
        assignee_id = values.pop("assignee_id", None) or self._user_id
        return TeamTask(
            id=task_id,
            owner_id=self._user_id,
            created_at=now,
            updated_at=now,
            completed_at=now if values["status"] == TaskStatus.COMPLETED else None,
            team_id=self._team_id,
            assignee_id=assignee_id,
            creator_id=self._user_id,
            **values,
        )

    def _from_document(self, doc_id: str, doc: Mapping[str, Any]) -> TeamTask:
        return TeamTask.from_document(doc_id, doc)

    async def add(self, data: Mapping[str, Any]) -> TeamTask:
        try:
            return await super().add(data)
        finally:
            self._stats = None

    async def update(self, task_id: str, partial: Mapping[str, Any]) -> None:
        try:
            await super().update(task_id, partial)
        finally:
            self._stats = None
        # Status changes publish through _after_status_change.
        if "status" not in partial and STATS_FIELDS & partial.keys() and task_id in self._mirror:
            await self._publish_stats(self.stats)

    async def delete(self, task_id: str) -> None:
        try:
            await super().delete(task_id)
        finally:
            self._stats = None

    async def refresh(self) -> None:
        await super().refresh()
        if not self._conn.is_remote:
            return
        rows = await self._remote(
            "query",
            lambda: self._remote_store.query(ACTIVITY_COLLECTION, {"team_id": self._team_id}),
        )
        last_seen = {
            member_id: seen
            for member_id, seen in (self._last_active_from_document(doc) for _, doc in rows)
            if member_id
        }

        today = self._clock.now().date()
        members = {o.user_id for o in self._history.owners() if o.team_id == self._team_id}
        for member_id in sorted(members | last_seen.keys()):
            prev = self._activities.get(member_id)
            self._activities[member_id] = member_activity(
                member_id,
                self._history,
                self._team_id,
                today,
                member_name=self.member_name(member_id),
                last_active_at=(prev.last_active_at if prev else None) or last_seen.get(member_id),
            )
        self._stats = recompute(self._team_id, self._mirror, self._member_names, self._clock.now())

    def _last_active_from_document(self, doc: Mapping[str, Any]) -> tuple[str, datetime | None]:
        member_id = str(doc.get("member_id") or "")
        raw = doc.get("last_active_at")
        if not raw:
            return member_id, None
        try:
            return member_id, datetime.fromisoformat(str(raw))
        except ValueError:
            self._log.warning("Bad last_active_at for member=%s: %r", member_id, raw)
            return member_id, None

    async def _on_completed(self, task: TeamTask) -> None:
        now = self._clock.now()
        uid = self._user_id
        self._activities[uid] = bump_activity(self._activities.get(uid), uid, self.member_name(uid), now)

        await super()._on_completed(task)

        reconciled = member_activity(
            uid,
            self._history,
            self._team_id,
            now.date(),
            member_name=self.member_name(uid),
            last_active_at=now,
        )
        if reconciled != self._activities[uid]:
            self._log.debug("Member activity reconciled member=%s %s", uid, reconciled)
        self._activities[uid] = reconciled
        await self._publish_activity(reconciled)

    async def _after_status_change(self, before: TeamTask, after: TeamTask) -> None:
        self._stats = recompute(self._team_id, self._mirror, self._member_names, self._clock.now())
        await self._publish_stats(self._stats)

    async def _upsert(self, collection: str, key: dict[str, Any], doc: dict[str, Any]) -> None:
        rows = await self._remote("query", lambda: self._remote_store.query(collection, key))
        if rows:
            doc_id = rows[0][0]
            await self._remote("update", lambda: self._remote_store.update(collection, doc_id, doc))
        else:
            await self._remote("insert", lambda: self._remote_store.insert(collection, doc))

    async def _publish_stats(self, stats: TeamStats) -> None:
        if not self._conn.is_remote:
            return
        try:
            await self._upsert(STATS_COLLECTION, {"team_id": self._team_id}, stats.to_document())
        except RemoteUnavailable:
            self._log.warning("Team stats publish failed team=%s; kept locally", self._team_id)

    async def _publish_activity(self, activity: MemberActivity) -> None:
        if not self._conn.is_remote:
            return
        key = {"team_id": self._team_id, "member_id": activity.member_id}
        try:
            await self._upsert(ACTIVITY_COLLECTION, key, activity.to_document(self._team_id))
        except RemoteUnavailable:
            self._log.warning(
                "Member activity publish failed team=%s member=%s; kept locally",
                self._team_id,
                activity.member_id,
            )
