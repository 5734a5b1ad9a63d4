# src/taskpulse/connectors/matrix_sink.py

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from nio import AsyncClient, RoomSendError

from ..notifications.sinks import DelayedNotificationSink

logger = logging.getLogger(__name__)


def format_notification(title: str, body: str) -> str:
    return f"{title}\n{body}" if body else title


class MatrixNotificationSink(DelayedNotificationSink):
    """Posts notifications as plain m.text messages into one Matrix room."""

    id_prefix = "matrix"

    def __init__(self, client: AsyncClient, room_id: str) -> None:
        super().__init__()
        if not room_id:
            raise ValueError("room_id is required")
        self.client = client
        self.room_id = room_id

    async def _deliver(self, title: str, body: str, data: Mapping[str, Any]) -> None:
        content = {
            "msgtype": "m.text",
            "body": format_notification(title, body),
        }
        resp = await self.client.room_send(
            room_id=self.room_id,
            message_type="m.room.message",
            content=content,
        )
        if isinstance(resp, RoomSendError):
            raise RuntimeError(f"Matrix room_send failed: {resp.message}")
        logger.debug("Matrix notification sent room=%s type=%s", self.room_id, data.get("type"))

    async def aclose(self) -> None:
        await super().aclose()
        await self.client.close()
