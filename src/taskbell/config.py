# src/taskbell/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing is required at import time: every value has a local default.
- Notification *preferences* (lead time, sound) are user data and live in the
  settings collaborator file, not here. This module only wires paths and tuning.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "TASKBELL"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


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


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    desktop_notifications: bool
    sound_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_path: Path
    notification_config_path: Path
    permission_path: Path
    error_history_path: Path
    export_dir: Path

    # ---- Scheduler / monitor tuning ----
    poll_interval_seconds: float
    error_history_size: int

    # ---- Background worker ----
    worker_enabled: bool
    worker_ping_timeout_seconds: float
    worker_check_interval_seconds: float

    # ---- Push server ----
    push_server_url: Optional[str]
    push_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskbell") or "taskbell"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        desktop_notifications = _env_bool(_k("DESKTOP_NOTIFICATIONS"), True)
        sound_enabled = _env_bool(_k("SOUND_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskbell"))
        tasks_path = _env_path(_k("TASKS_PATH"), data_dir / "tasks.json")
        notification_config_path = _env_path(
            _k("NOTIFICATION_CONFIG_PATH"),
            data_dir / "notification_config.json",
        )
        permission_path = _env_path(_k("PERMISSION_PATH"), data_dir / "permission.json")
        error_history_path = _env_path(_k("ERROR_HISTORY_PATH"), data_dir / "error_history.json")
        export_dir = _env_path(_k("EXPORT_DIR"), data_dir / "exports")

        poll_interval_seconds = _env_float(_k("POLL_INTERVAL_SECONDS"), 30.0)
        error_history_size = _env_int(_k("ERROR_HISTORY_SIZE"), 50)

        worker_enabled = _env_bool(_k("WORKER_ENABLED"), True)
        worker_ping_timeout_seconds = _env_float(_k("WORKER_PING_TIMEOUT_SECONDS"), 2.0)
        worker_check_interval_seconds = _env_float(_k("WORKER_CHECK_INTERVAL_SECONDS"), 900.0)

        push_server_url = _env(_k("PUSH_SERVER_URL"), "").strip() or None
        push_timeout_seconds = _env_float(_k("PUSH_TIMEOUT_SECONDS"), 10.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            desktop_notifications=desktop_notifications,
            sound_enabled=sound_enabled,
            data_dir=data_dir,
            tasks_path=tasks_path,
            notification_config_path=notification_config_path,
            permission_path=permission_path,
            error_history_path=error_history_path,
            export_dir=export_dir,
            poll_interval_seconds=poll_interval_seconds,
            error_history_size=error_history_size,
            worker_enabled=worker_enabled,
            worker_ping_timeout_seconds=worker_ping_timeout_seconds,
            worker_check_interval_seconds=worker_check_interval_seconds,
            push_server_url=push_server_url,
            push_timeout_seconds=push_timeout_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
