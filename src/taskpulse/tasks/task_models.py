# src/taskpulse/tasks/task_models.py

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, fields, replace
from datetime import date, datetime, time
from enum import StrEnum
from typing import Any

from ..errors import ValidationError


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except Exception:
            return cls.PENDING

    @classmethod
    def parse(cls, raw: Any) -> TaskStatus:
        """Strict variant used for caller input."""
        if isinstance(raw, TaskStatus):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValidationError(f"invalid status: {raw!r}") from None


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except Exception:
            return cls.MEDIUM

    @classmethod
    def parse(cls, raw: Any) -> TaskPriority:
        if isinstance(raw, TaskPriority):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValidationError(f"invalid priority: {raw!r}") from None


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str
    due_date: datetime
    status: TaskStatus
    priority: TaskPriority
    tags: list[str]
    owner_id: str
    created_at: datetime
    updated_at: datetime

    # Set when the task last entered COMPLETED; feeds behavior analysis.
    completed_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def to_document(self) -> dict[str, Any]:
        """Serialize without the id (the remote store owns ids)."""
        doc: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "id":
                continue
            doc[f.name] = _to_wire(getattr(self, f.name))
        return doc

    @classmethod
    def from_document(cls, doc_id: str, doc: Mapping[str, Any]) -> Task:
        return cls(**_common_kwargs(doc_id, doc))


@dataclass(slots=True)
class TeamTask(Task):
    team_id: str = ""
    assignee_id: str = ""
    creator_id: str = ""

    @classmethod
    def from_document(cls, doc_id: str, doc: Mapping[str, Any]) -> TeamTask:
        kwargs = _common_kwargs(doc_id, doc)
        return cls(
            **kwargs,
            team_id=str(doc.get("team_id") or ""),
            assignee_id=str(doc.get("assignee_id") or kwargs["owner_id"]),
            creator_id=str(doc.get("creator_id") or kwargs["owner_id"]),
        )


# Fields a caller may set through add()/update(). Everything else is store-managed.
EDITABLE_FIELDS = frozenset({"title", "description", "due_date", "status", "priority", "tags"})
TEAM_EDITABLE_FIELDS = EDITABLE_FIELDS | {"assignee_id"}


def _to_wire(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, StrEnum):
        return value.value
    if isinstance(value, list):
        return list(value)
    return value


def parse_instant(raw: Any, *, default: datetime) -> datetime:
    """
    Accept datetime / date / ISO string / None and return an aware datetime.

    Naive values are interpreted in local time.
    """
    if raw is None or raw == "":
        return default
    if isinstance(raw, datetime):
        return raw if raw.tzinfo is not None else raw.astimezone()
    if isinstance(raw, date):
        return datetime.combine(raw, time(0, 0)).astimezone()
    if isinstance(raw, str):
        try:
            value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"invalid date: {raw!r}") from None
        return value if value.tzinfo is not None else value.astimezone()
    raise ValidationError(f"invalid date: {raw!r}")


def normalize_tags(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.replace(",", " ").split()
    if not isinstance(raw, Iterable):
        return []
    out: list[str] = []
    for t in raw:
        s = str(t).strip()
        if s and s not in out:
            out.append(s)
    return out


def normalize_title(raw: Any) -> str:
    title = str(raw or "").strip()
    if not title:
        raise ValidationError("title is required")
    return title


def normalize_new(data: Mapping[str, Any], *, now: datetime) -> dict[str, Any]:
    """Validate and fill defaults for a new task payload."""
    return {
        "title": normalize_title(data.get("title")),
        "description": str(data.get("description") or "").strip(),
        "due_date": parse_instant(data.get("due_date"), default=now),
        "status": TaskStatus.parse(data.get("status") or TaskStatus.PENDING),
        "priority": TaskPriority.parse(data.get("priority") or TaskPriority.MEDIUM),
        "tags": normalize_tags(data.get("tags")),
    }


def normalize_patch(partial: Mapping[str, Any], *, allowed: frozenset[str] = EDITABLE_FIELDS) -> dict[str, Any]:
    """Validate a partial update. Unknown keys are rejected."""
    unknown = set(partial) - allowed
    if unknown:
        raise ValidationError(f"unknown or read-only fields: {', '.join(sorted(unknown))}")

    out: dict[str, Any] = {}
    for key, value in partial.items():
        if key == "title":
            out[key] = normalize_title(value)
        elif key == "description":
            out[key] = str(value or "").strip()
        elif key == "due_date":
            if value is None:
                raise ValidationError("due_date cannot be cleared")
            out[key] = parse_instant(value, default=datetime.now().astimezone())
        elif key == "status":
            out[key] = TaskStatus.parse(value)
        elif key == "priority":
            out[key] = TaskPriority.parse(value)
        elif key == "tags":
            out[key] = normalize_tags(value)
        else:
            out[key] = str(value or "").strip()
    return out


def apply_patch(task: Task, patch: Mapping[str, Any], *, now: datetime) -> Task:
    """Return a copy of task with patch applied; updated_at never goes backwards."""
    updated_at = max(now, task.created_at)
    changes = dict(patch)
    new_status = changes.get("status")
    if new_status == TaskStatus.COMPLETED and task.status != TaskStatus.COMPLETED:
        changes["completed_at"] = updated_at
    elif new_status is not None and new_status != TaskStatus.COMPLETED:
        changes["completed_at"] = None
    return replace(task, **changes, updated_at=updated_at)


def _common_kwargs(doc_id: str, doc: Mapping[str, Any]) -> dict[str, Any]:
    fallback = datetime.now().astimezone()
    created_at = parse_instant(doc.get("created_at"), default=fallback)
    updated_at = max(parse_instant(doc.get("updated_at"), default=created_at), created_at)
    completed_raw = doc.get("completed_at")
    return {
        "id": str(doc_id),
        "title": str(doc.get("title") or ""),
        "description": str(doc.get("description") or ""),
        "due_date": parse_instant(doc.get("due_date"), default=created_at),
        "status": TaskStatus.from_db(doc.get("status")),
        "priority": TaskPriority.from_db(doc.get("priority")),
        "tags": normalize_tags(doc.get("tags")),
        "owner_id": str(doc.get("owner_id") or ""),
        "created_at": created_at,
        "updated_at": updated_at,
        "completed_at": parse_instant(completed_raw, default=updated_at) if completed_raw else None,
    }

