# src/taskbell/diagnostics/monitor.py

"""
Error monitor for notification delivery.

Keeps a bounded ring buffer of classified failures (oldest evicted first) so the user
can inspect what went wrong on this device without digging through log files.
Optionally mirrors the buffer to a JSON file so it survives restarts.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import threading
import time
from collections import deque
from datetime import date
from pathlib import Path
from typing import Any

from ..core.models import DeviceInfo, ErrorKind, ErrorRecord
from ..errors import classify_exception

logger = logging.getLogger(__name__)

MAX_ERROR_HISTORY = 50
EXPORT_PREFIX = "notification-errors"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ErrorMonitor:
    def __init__(
        self,
        *,
        max_entries: int = MAX_ERROR_HISTORY,
        device_info: DeviceInfo | None = None,
        history_path: str | Path | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = int(max_entries)
        self.device_info = device_info
        self._path = Path(history_path) if history_path else None

        self._lock = threading.Lock()
        self._io_lock = threading.Lock()
        self._buffer: deque[ErrorRecord] = deque(maxlen=self.max_entries)
        self._save_pending = False

        self._load()

    # -------------------------
    # Recording
    # -------------------------

    def record(
        self,
        kind: ErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        timestamp: int | None = None,
    ) -> ErrorRecord:
        entry = ErrorRecord(
            type=kind,
            message=message,
            timestamp=_now_ms() if timestamp is None else int(timestamp),
            device_info=self.device_info,
            details=dict(details or {}),
        )
        with self._lock:
            # deque(maxlen=...) drops from the left: oldest first.
            self._buffer.append(entry)

        logger.warning("[notification error] %s: %s", kind.value, message)
        self._schedule_save()
        return entry

    def record_exception(
        self,
        exc: BaseException,
        default: ErrorKind = ErrorKind.UNKNOWN,
        *,
        context: str = "",
        details: dict[str, Any] | None = None,
    ) -> ErrorRecord:
        kind = classify_exception(exc, default)
        message = f"{context}: {exc!r}" if context else repr(exc)
        return self.record(kind, message, details)

    def log_success(self, event: str, details: dict[str, Any] | None = None) -> None:
        logger.info("[notification ok] %s %s", event, details or "")

    # -------------------------
    # Reading
    # -------------------------

    def history(self, limit: int | None = None) -> list[ErrorRecord]:
        """Chronological (oldest first). `limit` keeps the most recent entries."""
        with self._lock:
            items = list(self._buffer)
        if limit is not None:
            if limit <= 0:
                return []
            items = items[-limit:]
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()
        if self._path is not None:
            with contextlib.suppress(FileNotFoundError):
                self._path.unlink()
        logger.info("Error history cleared.")

    # -------------------------
    # Export
    # -------------------------

    def export_json(self) -> str:
        return json.dumps([r.to_dict() for r in self.history()], ensure_ascii=False, indent=2)

    def export_filename(self, today: date | None = None) -> str:
        today = today or date.today()
        return f"{EXPORT_PREFIX}-{today.isoformat()}.json"

    def export(self, directory: str | Path, *, today: date | None = None) -> Path:
        """Write the bounded history as a downloadable JSON artifact; returns its path."""
        out_dir = Path(directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / self.export_filename(today)
        path.write_text(self.export_json(), "utf-8")
        logger.info("Exported %d error records to %s", len(self), path)
        return path

    # -------------------------
    # Persistence (best-effort)
    # -------------------------

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except Exception:
            logger.warning("Failed to load error history from %s", self._path, exc_info=True)
            return
        if not isinstance(data, list):
            return
        skipped = 0
        for raw in data[-self.max_entries :]:
            if not isinstance(raw, dict):
                skipped += 1
                continue
            try:
                self._buffer.append(ErrorRecord.from_dict(raw))
            except (TypeError, ValueError):
                skipped += 1
        if skipped:
            logger.warning("Skipped %d malformed error records in %s", skipped, self._path)
        logger.info("Loaded %d error records from %s", len(self._buffer), self._path)

    def _schedule_save(self) -> None:
        # On an event loop the write goes to the default executor; bursts collapse into one write.
        if self._path is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._save()
            return
        with self._lock:
            if self._save_pending:
                return
            self._save_pending = True
        loop.run_in_executor(None, self.flush)

    def flush(self) -> None:
        """Write the history file now."""
        with self._lock:
            self._save_pending = False
        self._save()

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            with self._io_lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp = self._path.with_suffix(".tmp")
                records = self.history()
                tmp.write_text(json.dumps([r.to_dict() for r in records], ensure_ascii=False), "utf-8")
                os.replace(tmp, self._path)
        except Exception:
            logger.warning("Failed to save error history to %s", self._path, exc_info=True)
