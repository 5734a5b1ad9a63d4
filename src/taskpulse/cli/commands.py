# src/taskpulse/cli/commands.py

from __future__ import annotations

import inspect
import logging
import shlex
from collections.abc import Awaitable, Callable
from datetime import datetime

from ..analytics.history import completion_rate
from ..analytics.streaks import current_streak, longest_streak
from ..core.clock import days_back
from ..core.state import AppState
from ..devtools.seed import SEED_DAYS, seed_history
from ..errors import NotFound, RemoteUnavailable, ValidationError
from ..notifications.policy import RATE_WINDOW_DAYS, parse_preferred_times
from ..tasks.task_models import Task, TaskStatus, TeamTask
from ..tasks.task_store import TaskStore, TeamTaskStore

CommandResult = str | Awaitable[str]
CommandHandler = Callable[[AppState, list[str]], CommandResult]

logger = logging.getLogger(__name__)

DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


class CommandRegistry:
    """Slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases or []:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".

        Returns a reply string or None if not a command. Handlers may be sync
        or async. Input and connectivity errors become replies.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError:
            parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        state.notifier.preferences.mark_active(state.user_id, state.clock.now())

        try:
            result = handler(state, args)
            if inspect.isawaitable(result):
                result = await result
            return result
        except ValidationError as e:
            return f"Invalid input: {e}"
        except RemoteUnavailable as e:
            logger.info("Command /%s hit remote failure: %s", name, e)
            return (
                f"Remote store unavailable ({e}). Changes are kept locally; "
                "working offline for the rest of this session."
            )

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        lines.append("  /exit - Quit.")
        return "\n".join(lines)


registry = CommandRegistry()


# ---------- helpers ----------

_OPTION_KEYS = {
    "desc": "description",
    "description": "description",
    "due": "due_date",
    "priority": "priority",
    "prio": "priority",
    "tags": "tags",
    "status": "status",
    "title": "title",
    "assignee": "assignee_id",
}


def parse_fields(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """
    Split args into free words and key=value options.

    /add Buy milk priority=high due=2026-10-20 tags=home,errands
    """
    words: list[str] = []
    opts: dict[str, str] = {}
    for a in args:
        key, sep, value = a.partition("=")
        field = _OPTION_KEYS.get(key.lower()) if sep else None
        if field is None:
            words.append(a)
        else:
            opts[field] = value
    return words, opts


def _fmt_dt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def format_task(index: int, task: Task) -> str:
    mark = {"completed": "x", "in_progress": "~"}.get(task.status.value, " ")
    line = f"{index:>2}. [{mark}] {task.title} ({task.priority.value}, due {task.due_date:%Y-%m-%d})"
    if task.tags:
        line += " #" + " #".join(task.tags)
    if isinstance(task, TeamTask):
        line += f" @{task.assignee_id}"
    return f"{line}  id={task.id}"


def _resolve(store: TaskStore, ref: str) -> Task:
    """Task by id, or by 1-based position in the current /list order."""
    try:
        return store.get(ref)
    except NotFound:
        if ref.isdigit():
            tasks = store.list()
            n = int(ref)
            if 1 <= n <= len(tasks):
                return tasks[n - 1]
        raise


async def _set_status(store: TaskStore, args: list[str], status: TaskStatus) -> str:
    if not args:
        return f"Usage: /{'done' if status == TaskStatus.COMPLETED else 'start'} <id|#>"
    try:
        task = _resolve(store, args[0])
    except NotFound as e:
        return str(e)
    await store.set_status(task.id, status)
    return f"{task.title} -> {status.value}"


def _list_tasks(store: TaskStore, args: list[str]) -> str:
    tasks = store.list()
    if args:
        status = TaskStatus.parse(args[0])
        tasks = [t for t in tasks if t.status == status]
    if not tasks:
        return "No tasks."
    all_ids = [t.id for t in store.list()]
    return "\n".join(format_task(all_ids.index(t.id) + 1, t) for t in tasks)


async def _add(store: TaskStore, args: list[str]) -> str:
    words, opts = parse_fields(args)
    data: dict[str, object] = dict(opts)
    data.setdefault("title", " ".join(words))
    task = await store.add(data)
    return f"Added: {task.title} (id={task.id})"


async def _edit(store: TaskStore, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /edit <id|#> key=value ... (title, desc, due, priority, tags, status)"
    try:
        task = _resolve(store, args[0])
    except NotFound as e:
        return str(e)
    words, opts = parse_fields(args[1:])
    if words:
        return f"Unrecognized arguments: {' '.join(words)}"
    await store.update(task.id, opts)
    return f"Updated: {store.get(task.id).title}"


async def _remove(store: TaskStore, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <id|#>"
    try:
        task = _resolve(store, args[0])
    except NotFound as e:
        return str(e)
    await store.delete(task.id)
    return f"Deleted: {task.title}"


# ---------- personal commands ----------


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    s = state.settings
    conn = state.connectivity
    lines = [
        "Status:",
        f"  User: {state.user_id}",
        f"  Store mode: {conn.mode.value}" + (f" ({conn.reason})" if conn.reason else ""),
        f"  Remote: {s.remote_url or '(none)'}",
        f"  Tasks: {len(state.tasks.list())}",
    ]
    if state.team is not None:
        lines.append(f"  Team: {state.team.team_id} ({len(state.team.list())} tasks)")
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str]) -> str:
    """/add <title> [desc=..] [due=YYYY-MM-DD] [priority=low|medium|high] [tags=a,b]"""
    return await _add(state.tasks, args)


def cmd_list(state: AppState, args: list[str]) -> str:
    """/list [pending|in_progress|completed]"""
    return _list_tasks(state.tasks, args)


async def cmd_start(state: AppState, args: list[str]) -> str:
    return await _set_status(state.tasks, args, TaskStatus.IN_PROGRESS)


async def cmd_done(state: AppState, args: list[str]) -> str:
    return await _set_status(state.tasks, args, TaskStatus.COMPLETED)


async def cmd_edit(state: AppState, args: list[str]) -> str:
    return await _edit(state.tasks, args)


async def cmd_rm(state: AppState, args: list[str]) -> str:
    return await _remove(state.tasks, args)


async def cmd_refresh(state: AppState, args: list[str]) -> str:
    if not state.connectivity.is_remote:
        return "Local mode: nothing to refresh."
    await state.tasks.refresh()
    if state.team is not None:
        await state.team.refresh()
    return f"Refreshed: {len(state.tasks.list())} tasks."


def cmd_streak(state: AppState, args: list[str]) -> str:
    entries = state.history.all_entries(state.owner)
    today = state.clock.now().date()
    cur = current_streak(entries, today)
    best = longest_streak(entries)
    rate = completion_rate(entries, today, RATE_WINDOW_DAYS)
    return f"Current streak: {cur} day(s). Longest: {best}. 7-day completion rate: {rate:.0%}."


def cmd_history(state: AppState, args: list[str]) -> str:
    """/history [days]"""
    days = 7
    if args:
        if not args[0].isdigit() or int(args[0]) <= 0:
            return "Usage: /history [days]"
        days = min(int(args[0]), 90)
    today = state.clock.now().date()
    rows = state.history.entries(state.owner, days, today)
    lines = [f"Last {days} day(s):"]
    for day, e in zip(days_back(today, days), rows):
        bar = "#" * e.completed_tasks
        lines.append(f"  {day.isoformat()} {DAY_NAMES[day.weekday()]} {e.completed_tasks}/{e.total_tasks} {bar}")
    return "\n".join(lines)


def cmd_pattern(state: AppState, args: list[str]) -> str:
    p = state.notifier.pattern_for(state.user_id)
    if p.is_empty:
        return "Not enough history yet (need at least 3 days with data)."
    top_hours = sorted(range(24), key=lambda h: (-p.hourly_activity[h], h))[:3]
    top_days = sorted(range(7), key=lambda d: (-p.daily_activity[d], d))[:3]
    hours = ", ".join(f"{h:02d}:00" for h in top_hours if p.hourly_activity[h] > 0) or "-"
    days = ", ".join(DAY_NAMES[d] for d in top_days if p.daily_activity[d] > 0) or "-"
    return (
        "Behavior pattern:\n"
        f"  Most active hours: {hours}\n"
        f"  Most active days: {days}\n"
        f"  Difficult tasks in the morning: {'yes' if p.prefers_difficult_tasks_in_morning else 'no'}\n"
        f"  Short tasks first: {'yes' if p.prefers_short_tasks_first else 'no'}\n"
        f"  Average session: {p.average_session_duration:.0f} min"
    )


async def cmd_notify(state: AppState, args: list[str]) -> str:
    """
    /notify          -> preferences + next send time
    /notify now      -> run one scheduler tick now
    /notify plan     -> schedule the next adaptive notification
    /notify morning|evening|weekend on|off
    /notify times HH:MM[,HH:MM...] | clear
    """
    prefs = state.notifier.preferences.get(state.user_id)
    if not args:
        nxt = state.policy.next_send_time(state.clock.now(), prefs, state.notifier.pattern_for(state.user_id))
        return (
            "Notifications:\n"
            f"  Morning window: {'on' if prefs.morning_window else 'off'}\n"
            f"  Evening window: {'on' if prefs.evening_window else 'off'}\n"
            f"  Weekends: {'on' if prefs.weekend_notifications else 'off'}\n"
            f"  Preferred times: {', '.join(prefs.preferred_times) or '-'}\n"
            f"  Last active: {_fmt_dt(prefs.last_active_at)}\n"
            f"  Next send time: {_fmt_dt(nxt)}"
        )

    sub = args[0].lower()
    if sub == "now":
        d = await state.notifier.tick(state.user_id)
        if not d.should_send:
            return f"Not sent: {d.reason}."
        return f"Sent ({d.family}): {d.message.title}" if d.message else "Sent."

    if sub == "plan":
        d = await state.notifier.schedule_adaptive(state.user_id)
        if not d.should_send:
            return f"Not scheduled: {d.reason}."
        return f"Scheduled for {_fmt_dt(d.send_at)}: {d.message.title if d.message else ''}"

    if sub in ("morning", "evening", "weekend") and len(args) == 2 and args[1].lower() in ("on", "off"):
        value = args[1].lower() == "on"
        attr = {"morning": "morning_window", "evening": "evening_window", "weekend": "weekend_notifications"}[sub]
        setattr(prefs, attr, value)
        state.notifier.preferences.save(prefs)
        return f"{sub.capitalize()} notifications {'on' if value else 'off'}."

    if sub == "times" and len(args) == 2:
        raw = args[1]
        prefs.preferred_times = [] if raw.lower() == "clear" else parse_preferred_times(raw.split(","))
        state.notifier.preferences.save(prefs)
        return f"Preferred times: {', '.join(prefs.preferred_times) or 'none'}."

    return "Usage: /notify [now | plan | morning|evening|weekend on|off | times HH:MM,...|clear]"


def cmd_seed(state: AppState, args: list[str]) -> str:
    """/seed [days]: dev-only random completion history."""
    days = int(args[0]) if args and args[0].isdigit() else SEED_DAYS
    n = seed_history(state.history, state.owner, state.clock.now().date(), days=days)
    return f"Seeded {n} history row(s) over {days} day(s)."


# ---------- team ----------


def _team_summary(team: TeamTaskStore) -> str:
    st = team.stats
    lines = [
        f"Team {team.team_id}:",
        f"  Tasks: {st.total_tasks} (done {st.completed_tasks}, in progress {st.in_progress_tasks}, "
        f"pending {st.pending_tasks})",
        f"  Completion rate: {st.team_completion_rate:.1f}%",
    ]
    for c in st.member_contributions:
        lines.append(f"  {c.member_name}: {c.tasks_completed} done ({c.completion_percentage:.1f}%)")
    for a in team.activities:
        lines.append(
            f"  {a.member_name}: today {a.task_completed_today}, week {a.task_completed_this_week}, "
            f"streak {a.current_streak}"
        )
    return "\n".join(lines)


async def cmd_team(state: AppState, args: list[str]) -> str:
    """/team [list|add|start|done|edit|rm] ...; no args shows stats."""
    team = state.team
    if team is None:
        return "No team configured (set TASKPULSE_TEAM_ID)."
    if not args:
        return _team_summary(team)

    sub, rest = args[0].lower(), args[1:]
    if sub == "list":
        return _list_tasks(team, rest)
    if sub == "add":
        return await _add(team, rest)
    if sub == "start":
        return await _set_status(team, rest, TaskStatus.IN_PROGRESS)
    if sub == "done":
        return await _set_status(team, rest, TaskStatus.COMPLETED)
    if sub == "edit":
        return await _edit(team, rest)
    if sub == "rm":
        return await _remove(team, rest)
    return "Usage: /team [list | add <title> .. | start <#> | done <#> | edit <#> k=v | rm <#>]"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show user, store mode and task counts.")
registry.register(
    "add", cmd_add, help_text="Add a task: /add <title> [desc=..] [due=YYYY-MM-DD] [priority=..] [tags=a,b]."
)
registry.register("list", cmd_list, help_text="List tasks: /list [pending|in_progress|completed].", aliases=["ls"])
registry.register("start", cmd_start, help_text="Mark a task in progress: /start <id|#>.")
registry.register("done", cmd_done, help_text="Complete a task: /done <id|#>.")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <id|#> key=value ...")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <id|#>.")
registry.register("refresh", cmd_refresh, help_text="Reload tasks and history from the remote store.")
registry.register("streak", cmd_streak, help_text="Show current/longest streak and 7-day rate.")
registry.register("history", cmd_history, help_text="Show daily completions: /history [days].")
registry.register("pattern", cmd_pattern, help_text="Show the analyzed behavior pattern.")
registry.register("team", cmd_team, help_text="Team tasks and stats: /team [list|add|start|done|edit|rm].")
registry.register("notify", cmd_notify, help_text="Notifications: /notify [now|plan|morning|evening|weekend on|off|times HH:MM,...|clear].")
registry.register("seed", cmd_seed, help_text="Dev only: seed random completion history: /seed [days].")
