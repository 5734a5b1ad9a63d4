# src/taskpulse/errors.py

"""
Error taxonomy.

- ValidationError: bad caller input; never retried.
- RemoteUnavailable: network / timeout / permission failure of the remote store.
  The store has already switched to local mode and kept the mutation.
- NotFound: the local mirror has no such id.
"""

from __future__ import annotations


class TaskpulseError(Exception):
    """Base class for all taskpulse errors."""


class ValidationError(TaskpulseError, ValueError):
    pass


class RemoteUnavailable(TaskpulseError):
    """Remote store could not be reached (network, timeout or permission)."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class NotFound(TaskpulseError, KeyError):
    def __init__(self, task_id: str) -> None:
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f"task not found: {self.task_id}"
