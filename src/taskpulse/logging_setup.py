# src/taskpulse/logging_setup.py

"""
Process-wide logging for the taskpulse console.

The console shows taskpulse's own records, with background components held
back to warnings so reminders and store failover lines do not drown the
prompt. The rotating file under the data dir keeps everything at DEBUG.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "taskpulse.log"
LOG_FILE_MAX_BYTES = 1_000_000
LOG_FILE_BACKUPS = 3

# Minimum console level per logger-name prefix; first match wins.
CONSOLE_THRESHOLDS: tuple[tuple[str, int], ...] = (
    ("taskpulse.connectors.matrix_", logging.WARNING),
    ("taskpulse.notifications.scheduler", logging.WARNING),
    ("taskpulse.", logging.NOTSET),
)
THIRD_PARTY_THRESHOLD = logging.ERROR

QUIET_LIBRARIES = {"urllib3": logging.WARNING, "nio": logging.INFO}


class ConsoleThresholdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for prefix, level in CONSOLE_THRESHOLDS:
            if record.name.startswith(prefix):
                return record.levelno >= level
        # Third-party libraries and captured warnings ("py.warnings").
        return record.levelno >= THIRD_PARTY_THRESHOLD


def resolve_level(level: int | str) -> int:
    """Accept logging constants or names like "debug"; unknown names mean INFO."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    *,
    log_dir: str | Path,
    console_level: int | str = logging.INFO,
    file_level: int | str = logging.DEBUG,
) -> Path:
    """Replace root handlers with the console and file pair. Returns the log path."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(resolve_level(console_level))
    console.setFormatter(logging.Formatter("%(levelname)-7s %(name)s: %(message)s"))
    console.addFilter(ConsoleThresholdFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
    )
    file_handler.setLevel(resolve_level(file_level))
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    for name, level in QUIET_LIBRARIES.items():
        logging.getLogger(name).setLevel(level)
    return log_file
