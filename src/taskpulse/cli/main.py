# src/taskpulse/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads tasks from the remote store, then
runs the notification scheduler in the background and the console REPL in the
foreground (when enabled).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..errors import RemoteUnavailable
from ..logging_setup import setup_logging
from ..notifications.scheduler import run_notification_scheduler

logger = logging.getLogger(__name__)


async def _initial_load(state: AppState) -> None:
    try:
        await state.tasks.refresh()
        if state.team is not None:
            await state.team.refresh()
    except RemoteUnavailable as e:
        logger.warning("Initial load failed, continuing in local mode: %s", e)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    for task in state.background:
        task.cancel()
    if state.background:
        await asyncio.gather(*state.background, return_exceptions=True)
    state.background.clear()

    aclose = getattr(state.sink, "aclose", None)
    if aclose is not None:
        try:
            await aclose()
        except Exception:
            logger.exception("Notification sink close failed.")


async def run(settings) -> None:
    state = await create_initial_state(settings=settings)
    await _initial_load(state)

    state.background.append(
        asyncio.create_task(
            run_notification_scheduler(
                state.notifier,
                lambda: [state.user_id],
                interval_seconds=settings.notify_interval_seconds,
            ),
            name="notification-scheduler",
        )
    )

    try:
        if settings.console_enabled:
            await run_console_loop(state)
        else:
            logger.info("Console disabled. Running the notification scheduler only. Press Ctrl+C to stop.")
            await asyncio.Event().wait()
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)

    logger.info("Starting %s...", settings.app_name)

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run(settings))

    logger.info("Bye.")


if __name__ == "__main__":
    main()
