# src/taskbell/storage/json_store.py

"""
File-backed collaborators.

Tasks and notification settings are owned by other parts of the product; locally they
are plain JSON files that this engine only reads (settings can also be written back by
console commands). Every reader tolerates a missing or corrupt file.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable

from ..core.models import NotificationConfig, PermissionState, Task

logger = logging.getLogger(__name__)


def _read_json(path: Path) -> Any:
    """Parsed JSON, or None if the file is missing or unreadable."""
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text("utf-8"))
    except Exception:
        logger.warning("Failed to read JSON from %s", path, exc_info=True)
        return None


def _atomic_write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
    os.replace(tmp, path)


class JsonTaskSource:
    """tasks.json: a list of task objects. Re-read on every snapshot."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def snapshot(self) -> list[Task]:
        data = _read_json(self._path)
        if data is None:
            return []
        if isinstance(data, dict):
            # {"tasks": [...]} is accepted too.
            data = data.get("tasks")
        if not isinstance(data, list):
            logger.warning("Ignoring %s: expected a list of tasks", self._path)
            return []
        return [Task.from_dict(raw) for raw in data if isinstance(raw, dict)]


class JsonConfigStore:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> NotificationConfig:
        return NotificationConfig.from_dict(_read_json(self._path))

    def save(self, config: NotificationConfig) -> None:
        try:
            _atomic_write_json(self._path, config.to_dict())
        except Exception:
            logger.exception("Failed to save notification config to %s", self._path)
            raise
        logger.info("Notification config saved to %s", self._path)


PromptFn = Callable[[str], str]

PROMPT_TEXT = "Allow taskbell to show task reminders as desktop notifications? [y/n] "


class FilePermissionPlatform:
    """
    Notification permission for a local process.

    The decision is stored in permission.json so that it survives restarts, just like a
    browser remembers a site's permission. The prompt is a console question; an empty
    answer counts as dismissing the prompt.
    """

    def __init__(self, path: str | Path, *, prompt_fn: PromptFn = input) -> None:
        self._path = Path(path)
        self._prompt_fn = prompt_fn

    def query(self) -> PermissionState:
        data = _read_json(self._path)
        if not isinstance(data, dict):
            return PermissionState.DEFAULT
        return PermissionState.parse(data.get("state"))

    async def prompt(self) -> PermissionState:
        answer = await asyncio.to_thread(self._prompt_fn, PROMPT_TEXT)
        answer = (answer or "").strip().lower()

        if answer in {"y", "yes"}:
            state = PermissionState.GRANTED
        elif answer in {"n", "no"}:
            state = PermissionState.DENIED
        else:
            return PermissionState.DEFAULT

        self.set(state)
        return state

    def set(self, state: PermissionState) -> None:
        """Change the stored decision (the equivalent of the system settings page)."""
        if state is PermissionState.DEFAULT or state is PermissionState.UNKNOWN:
            with contextlib.suppress(FileNotFoundError):
                self._path.unlink()
            return
        _atomic_write_json(self._path, {"state": state.value})


class DataDirStorage:
    """Persistent-storage probe: the data dir exists and is writable."""

    def __init__(self, data_dir: str | Path) -> None:
        self._dir = Path(data_dir)

    async def persisted(self) -> bool:
        return self._dir.is_dir() and os.access(self._dir, os.W_OK)
