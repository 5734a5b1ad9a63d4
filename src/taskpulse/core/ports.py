# src/taskpulse/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the remote store / notification transport swappable and makes testing easier.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol

Document = dict[str, Any]
# Plain JSON-like mapping as stored in the remote document store.


class RemoteDocumentStore(Protocol):
    """
    Authoritative remote document store.

    Every method may fail with a network / permission / timeout error.
    Adapters raise errors.RemoteUnavailable for all three.

    order_by uses the "field" / "-field" convention (leading minus = descending).
    """

    async def insert(self, collection: str, doc: Document) -> str: ...

    async def update(self, collection: str, doc_id: str, patch: Document) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def query(
            self,
            collection: str,
            filters: Mapping[str, Any] | None = None,
            order_by: str | None = None,
    ) -> list[tuple[str, Document]]: ...


class NotificationSink(Protocol):
    """
    Delivery side of notifications (push, chat room, console...).

    Fire-and-forget: delay_seconds=None means "deliver now".
    Returns an opaque delivery id.
    """

    async def schedule_notification(
            self,
            title: str,
            body: str,
            data: Mapping[str, Any] | None = None,
            delay_seconds: float | None = None,
    ) -> str: ...


class Clock(Protocol):
    """Wall clock. now() must return a timezone-aware datetime in local time."""

    def now(self) -> datetime: ...
