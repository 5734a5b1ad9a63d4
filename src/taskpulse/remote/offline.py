# src/taskpulse/remote/offline.py

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..core.ports import Document
from ..errors import RemoteUnavailable


class OfflineDocumentStore:
    """
    Remote store used when no backend is configured.

    Every call fails, so the first store operation switches the session to
    local mode and the app keeps working from the in-memory mirror.
    """

    def __init__(self, reason: str = "no remote store configured") -> None:
        self.reason = reason

    def _fail(self, operation: str) -> RemoteUnavailable:
        return RemoteUnavailable(self.reason, operation=operation)

    async def insert(self, collection: str, doc: Document) -> str:
        raise self._fail("insert")

    async def update(self, collection: str, doc_id: str, patch: Document) -> None:
        raise self._fail("update")

    async def delete(self, collection: str, doc_id: str) -> None:
        raise self._fail("delete")

    async def query(
            self,
            collection: str,
            filters: Mapping[str, Any] | None = None,
            order_by: str | None = None,
    ) -> list[tuple[str, Document]]:
        raise self._fail("query")
