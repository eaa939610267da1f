# src/taskbell/notifications/dedup.py

from __future__ import annotations

DEDUP_WINDOW_MS = 300_000


class DedupTracker:
    """
    task id -> timestamp (ms) of the last successful notification.

    The window is a sliding re-arm delay, not a one-shot guard: once it has elapsed the
    task may fire again. Entries are never deleted; they simply stop mattering after the
    task's due window has passed. State lives only as long as the owning scheduler.
    """

    def __init__(self, window_ms: int = DEDUP_WINDOW_MS) -> None:
        self._window_ms = int(window_ms)
        self._last: dict[str, float] = {}

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def should_notify(self, task_id: str, now_ms: float) -> bool:
        last = self._last.get(task_id)
        if last is None:
            return True
        return (now_ms - last) > self._window_ms

    def record(self, task_id: str, now_ms: float) -> None:
        self._last[task_id] = now_ms

    def last_notified(self, task_id: str) -> float | None:
        return self._last.get(task_id)

    def __len__(self) -> int:
        return len(self._last)
