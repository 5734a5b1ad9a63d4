# src/taskpulse/notifications/sinks.py

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)


class DelayedNotificationSink:
    """
    Base for sinks that deliver "now or after a delay".

    Subclasses implement _deliver(). Delayed deliveries run as background tasks;
    delivery errors there are logged, never raised to the scheduler.
    """

    id_prefix = "notif"

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._pending: dict[str, asyncio.Task[None]] = {}

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    async def _deliver(self, title: str, body: str, data: Mapping[str, Any]) -> None:
        raise NotImplementedError

    async def schedule_notification(
            self,
            title: str,
            body: str,
            data: Mapping[str, Any] | None = None,
            delay_seconds: float | None = None,
    ) -> str:
        delivery_id = f"{self.id_prefix}-{next(self._ids)}"
        payload = dict(data or {})

        if delay_seconds is None or delay_seconds <= 0:
            await self._deliver(title, body, payload)
            return delivery_id

        task = asyncio.create_task(self._deliver_later(delivery_id, title, body, payload, delay_seconds))
        self._pending[delivery_id] = task
        logger.debug("Notification %s scheduled in %.0fs", delivery_id, delay_seconds)
        return delivery_id

    async def _deliver_later(
            self,
            delivery_id: str,
            title: str,
            body: str,
            data: Mapping[str, Any],
            delay_seconds: float,
    ) -> None:
        try:
            await asyncio.sleep(delay_seconds)
            await self._deliver(title, body, data)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Delayed notification %s failed", delivery_id)
        finally:
            self._pending.pop(delivery_id, None)

    async def aclose(self) -> None:
        """Cancel deliveries that have not fired yet."""
        tasks = list(self._pending.values())
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


class ConsoleNotificationSink(DelayedNotificationSink):
    """Prints notifications to the terminal (the console connector's output stream)."""

    id_prefix = "console"

    def __init__(self, write: Callable[[str], None] = print) -> None:
        super().__init__()
        self._write = write

    async def _deliver(self, title: str, body: str, data: Mapping[str, Any]) -> None:
        self._write(f"[{_ts_local()}] [NOTIFY] {title}: {body}")
