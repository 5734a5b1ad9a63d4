# src/taskpulse/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every collaborator receives settings explicitly; get_settings() is only used
  by the composition root (cli/bootstrap.py).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKPULSE"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv() -> None:
    """Load .env from the working directory; real environment variables win."""
    load_dotenv(override=False)


_load_dotenv()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_window(name: str, default: tuple[time, time]) -> tuple[time, time]:
    """Parse "HH:MM-HH:MM" into a (start, end) pair."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        start_s, end_s = raw.strip().split("-", 1)
        start = time.fromisoformat(start_s.strip())
        end = time.fromisoformat(end_s.strip())
    except ValueError:
        return default
    if end <= start:
        return default
    return start, end


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Identity (opaque, caller supplied) ----
    user_id: str
    member_name: str
    team_id: str

    # ---- Remote document store (PocketBase) ----
    remote_url: str
    remote_identity: str
    remote_password: str
    remote_token: str
    remote_timeout_seconds: float

    # ---- Notifications ----
    morning_window: tuple[time, time]
    evening_window: tuple[time, time]
    weekend_notifications: bool
    notify_interval_seconds: float

    # ---- Connector flags ----
    console_enabled: bool
    matrix_enabled: bool

    # ---- Matrix (notification transport) ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_room_id: str
    matrix_store_path: Path

    @property
    def remote_enabled(self) -> bool:
        return bool(self.remote_url)

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskpulse") or "taskpulse"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskpulse"))

        user_id = _env(_k("USER_ID"), "local-user").strip() or "local-user"
        member_name = _env(_k("MEMBER_NAME"), "You").strip() or "You"
        team_id = _env(_k("TEAM_ID"), "").strip()

        remote_url = _env(_k("REMOTE_URL"), "").strip()
        remote_identity = _env(_k("REMOTE_IDENTITY"), "").strip()
        remote_password = _env(_k("REMOTE_PASSWORD"), "").strip()
        remote_token = _env(_k("REMOTE_TOKEN"), "").strip()
        remote_timeout_seconds = max(0.1, _env_float(_k("REMOTE_TIMEOUT_SECONDS"), 10.0))

        morning_window = _env_window(_k("MORNING_WINDOW"), (time(8, 0), time(10, 0)))
        evening_window = _env_window(_k("EVENING_WINDOW"), (time(19, 0), time(21, 0)))
        weekend_notifications = _env_bool(_k("WEEKEND_NOTIFICATIONS"), False)
        notify_interval_seconds = max(1.0, _env_float(_k("NOTIFY_INTERVAL_SECONDS"), 3600.0))

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)

        matrix_homeserver = _env(_k("MATRIX_HOMESERVER"), "").strip()
        matrix_user_id = _env(_k("MATRIX_USER_ID"), "").strip()
        matrix_password = _env(_k("MATRIX_PASSWORD"), "").strip()
        matrix_room_id = _env(_k("MATRIX_ROOM_ID"), "").strip()
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            user_id=user_id,
            member_name=member_name,
            team_id=team_id,
            remote_url=remote_url,
            remote_identity=remote_identity,
            remote_password=remote_password,
            remote_token=remote_token,
            remote_timeout_seconds=remote_timeout_seconds,
            morning_window=morning_window,
            evening_window=evening_window,
            weekend_notifications=weekend_notifications,
            notify_interval_seconds=notify_interval_seconds,
            console_enabled=console_enabled,
            matrix_enabled=matrix_enabled,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_room_id=matrix_room_id,
            matrix_store_path=matrix_store_path,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
