# src/taskpulse/connectors/matrix_client.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

from nio import AsyncClient, AsyncClientConfig, LoginResponse

logger = logging.getLogger(__name__)

SESSION_FILE = "session.json"


def _load_session(path: Path) -> dict[str, str]:
    val = json.loads(path.read_text("utf-8"))
    if not isinstance(val, dict):
        raise ValueError("Expected JSON object")
    missing = [k for k in ("access_token", "user_id", "device_id") if not val.get(k)]
    if missing:
        raise ValueError(f"{SESSION_FILE} is missing {', '.join(missing)}")
    return {k: str(val[k]) for k in ("access_token", "user_id", "device_id")}


def _save_session(path: Path, data: dict[str, Any]) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(OSError):
        # Holds an access token.
        os.chmod(path, 0o600)


async def create_matrix_client(settings) -> AsyncClient | None:
    """
    Matrix AsyncClient for sending notifications (no E2EE, send-only).

    Reuses a saved session.json when present; otherwise logs in once with the
    password and saves the session under matrix_store_path.
    Returns None when Matrix is not configured or login fails.
    """
    homeserver = (settings.matrix_homeserver or "").strip()
    user_id = (settings.matrix_user_id or "").strip()
    password = (settings.matrix_password or "").strip()
    store_dir = Path(settings.matrix_store_path)

    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set TASKPULSE_MATRIX_HOMESERVER and TASKPULSE_MATRIX_USER_ID")
        return None

    store_dir.mkdir(parents=True, exist_ok=True)
    session_file = store_dir / SESSION_FILE

    client = AsyncClient(homeserver, user_id, config=AsyncClientConfig(store_sync_tokens=False))

    if session_file.exists():
        try:
            data = _load_session(session_file)
        except (OSError, ValueError) as e:
            logger.warning("Failed to restore Matrix %s, will try password login: %r", SESSION_FILE, e)
        else:
            client.access_token = data["access_token"]
            client.user_id = data["user_id"]
            client.device_id = data["device_id"]
            logger.info("Matrix session restored for %s", client.user_id)
            return client

    if not password:
        logger.error(
            "Matrix %s not found and password is not set. "
            "Set TASKPULSE_MATRIX_PASSWORD once to bootstrap a session.",
            SESSION_FILE,
        )
        await client.close()
        return None

    device_name = f"{settings.app_name} notifier"
    logger.info("Logging in to Matrix (device_name=%r)...", device_name)
    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        await client.close()
        return None

    try:
        _save_session(
            session_file,
            {"access_token": resp.access_token, "user_id": resp.user_id, "device_id": resp.device_id},
        )
        logger.info("Matrix session saved to %s (user=%s)", session_file, resp.user_id)
    except OSError:
        # Still usable for this run.
        logger.exception("Failed to write Matrix %s", session_file)

    return client
