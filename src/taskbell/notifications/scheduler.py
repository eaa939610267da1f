# src/taskbell/notifications/scheduler.py

from __future__ import annotations

"""
Foreground notification scheduler.

A small polling loop that, on every tick:
- reads the notification config fresh from the settings collaborator,
- takes a read-only snapshot of the tasks,
- asks the matcher which tasks are due,
- passes each one through the dedup tracker and the permission gate,
- renders it via the injected sink and optionally plays a sound.

Rendering failures of one task are recorded and never stop the rest of the tick.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..core.models import ConnectionState, ErrorKind, PermissionState, Task
from ..core.ports import ConfigSource, ConnectionObserver, NotificationSink, SoundPort, TaskSource
from ..diagnostics.monitor import ErrorMonitor
from .content import build_task_notification
from .dedup import DedupTracker
from .matcher import due_instant, evaluate, time_until_ms
from .permission import PermissionGate

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 30.0

Clock = Callable[[], datetime]


def to_ms(moment: datetime) -> float:
    return moment.timestamp() * 1000.0


@dataclass(slots=True, frozen=True)
class SchedulerStatus:
    running: bool
    interval_seconds: float
    ticks: int
    notified_total: int
    last_tick_at: datetime | None
    connection: ConnectionState


class ForegroundScheduler:
    def __init__(
        self,
        *,
        tasks: TaskSource,
        config: ConfigSource,
        sink: NotificationSink,
        gate: PermissionGate,
        monitor: ErrorMonitor,
        sound: SoundPort | None = None,
        connection: ConnectionObserver | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        clock: Clock = datetime.now,
    ) -> None:
        self._tasks = tasks
        self._config = config
        self._sink = sink
        self._gate = gate
        self._monitor = monitor
        self._sound = sound
        self._connection = connection
        self._interval = max(0.01, float(interval_seconds))
        self._clock = clock

        self._dedup = DedupTracker()
        self._runner: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()

        self._ticks = 0
        self._notified_total = 0
        self._last_tick_at: datetime | None = None

    # -------------------------
    # Loop control
    # -------------------------

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self) -> None:
        """
        (Re)start the polling loop. Must be called from the owning event loop.

        Any previous loop is stopped first, so there is never more than one.
        The first evaluation happens immediately, not after the first interval.
        """
        self.stop()
        self._runner = asyncio.get_running_loop().create_task(self._run(), name="foreground-scheduler")
        logger.info("Foreground scheduler started (interval=%.1fs).", self._interval)

    def stop(self) -> None:
        """Cancel the loop synchronously. Safe to call when already stopped."""
        runner, self._runner = self._runner, None
        if runner is not None and not runner.done():
            runner.cancel()
            logger.info("Foreground scheduler stopped.")

    def status(self) -> SchedulerStatus:
        connection = ConnectionState.UNKNOWN
        if self._connection is not None:
            try:
                connection = self._connection.current()
            except Exception:
                logger.debug("Connection observer failed.", exc_info=True)
        return SchedulerStatus(
            running=self.running,
            interval_seconds=self._interval,
            ticks=self._ticks,
            notified_total=self._notified_total,
            last_tick_at=self._last_tick_at,
            connection=connection,
        )

    def should_notify(self, task_id: str, now_ms: float) -> bool:
        """Read-only view of the dedup state."""
        return self._dedup.should_notify(task_id, now_ms)

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduler tick failed")
            await asyncio.sleep(self._interval)

    async def check_now(self) -> list[Task]:
        """Evaluate immediately, outside the cadence (e.g. the app regained focus)."""
        return await self.tick()

    # -------------------------
    # One evaluation cycle
    # -------------------------

    async def tick(self) -> list[Task]:
        now = self._clock()
        self._ticks += 1
        self._last_tick_at = now

        config = self._config.load()
        if not config.enabled:
            logger.debug("Notifications disabled in settings; skipping tick")
            return []

        if self._gate.state is not PermissionState.GRANTED:
            logger.debug("Notification permission is %s; skipping tick", self._gate.state.value)
            return []

        try:
            tasks = list(self._tasks.snapshot())
        except Exception:
            logger.exception("Task snapshot failed")
            return []

        due = evaluate(now, tasks, config)
        if due:
            logger.debug("%d task(s) due at %s", len(due), now.isoformat(timespec="seconds"))

        now_ms = to_ms(now)
        notified: list[Task] = []

        for task in due:
            if not self._dedup.should_notify(task.id, now_ms):
                logger.debug("Task %s notified recently; skipping", task.id)
                continue

            try:
                self._gate.require_granted()
                instant = due_instant(task) or now
                content = build_task_notification(task, now, time_until_ms(now, instant))
                await self._sink.show(content)
            except Exception as exc:
                logger.exception("Notification for task %s failed", task.id)
                self._monitor.record_exception(
                    exc,
                    ErrorKind.NOTIFICATION_DELIVERY_FAILED,
                    context=f"task {task.id}",
                    details={"taskId": task.id},
                )
                continue

            self._dedup.record(task.id, now_ms)
            self._notified_total += 1
            notified.append(task)
            logger.info("Reminder sent for task %s (%s)", task.id, task.title)

            if config.sound_enabled:
                self._play_sound_later()

        return notified

    def _play_sound_later(self) -> None:
        if self._sound is None or not self._sound.enabled:
            return
        task = asyncio.get_running_loop().create_task(asyncio.to_thread(self._sound.play_beep))
        # Keep a reference until done; the tick never waits for playback.
        self._background.add(task)
        task.add_done_callback(self._background.discard)
