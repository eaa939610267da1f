# src/taskbell/worker/background.py

from __future__ import annotations

"""
Background worker.

Runs independently of the application window and reacts to lifecycle and platform
events:
- install / activate: take over immediately, claim open clients, start periodic checks,
- push: render exactly one notification per push,
- notification_click: route the user to the right place,
- message: liveness probe and the small app<->worker protocol.

The worker owns its own state (client state, synced task snapshot, its own dedup
tracker). Failures are reported to the application with ERROR_REPORT messages.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Callable

from ..core.models import ErrorKind, NotificationConfig, PermissionState, Task
from ..core.ports import ClientRegistry, JsonMessage, NotificationSink
from ..errors import classify_exception
from ..notifications.content import (
    build_push_notification,
    build_task_notification,
    build_test_notification,
    parse_push_payload,
    with_data,
)
from ..notifications.dedup import DedupTracker
from ..notifications.matcher import due_instant, evaluate, time_until_ms
from .protocol import MessageType, make_message, now_ms, pong

logger = logging.getLogger(__name__)

HOME_ROUTE = "/"
CHECK_INTERVAL_SECONDS = 15 * 60.0

Reply = Callable[[JsonMessage], None]


class WorkerLifecycle(StrEnum):
    NEW = "new"
    INSTALLED = "installed"
    ACTIVATED = "activated"


def task_route(task_id: str, *, action: str | None = None) -> str:
    route = f"/tasks?id={task_id}"
    return f"{route}&action={action}" if action else route


@dataclass(slots=True, frozen=True)
class ClickIntent:
    """Where a notification click should take the user (None: just dismiss)."""

    route: str | None
    task_id: str | None
    action: str | None
    timestamp: int


@dataclass(slots=True)
class ClientState:
    in_background: bool = True
    last_activity: int = field(default_factory=now_ms)
    push_subscription: dict[str, Any] | None = None


def resolve_click_route(data: dict[str, Any] | None, action: str | None) -> str | None:
    data = data or {}
    task_id = data.get("taskId")

    if action == "close":
        return None
    if action == "view" and task_id:
        return task_route(str(task_id), action="view")
    if task_id:
        return task_route(str(task_id))
    url = data.get("url")
    if isinstance(url, str) and url.startswith("/"):
        return url
    return HOME_ROUTE


class BackgroundWorker:
    def __init__(
        self,
        *,
        sink: NotificationSink,
        clients: ClientRegistry,
        clock: Callable[[], datetime] = datetime.now,
        check_interval_seconds: float = CHECK_INTERVAL_SECONDS,
        heartbeat_seconds: float | None = None,
    ) -> None:
        self._sink = sink
        self._clients = clients
        self._clock = clock
        self._check_interval = max(0.01, float(check_interval_seconds))
        self._heartbeat_interval = heartbeat_seconds or self._check_interval / 3

        self.lifecycle = WorkerLifecycle.NEW
        self.claimed = False
        self.client_state = ClientState()
        self.click_intents: list[ClickIntent] = []

        self._tasks: list[Task] = []
        self._config = NotificationConfig()
        self._permission = PermissionState.DEFAULT
        self._dedup = DedupTracker()

        self.checks = 0
        self._last_check: float | None = None
        self._checker: asyncio.Task[None] | None = None
        self._heartbeat: asyncio.Task[None] | None = None

    @property
    def sink(self) -> NotificationSink:
        return self._sink

    # -------------------------
    # Lifecycle
    # -------------------------

    async def install(self) -> None:
        self.lifecycle = WorkerLifecycle.INSTALLED
        logger.info("Worker installed; activating without waiting for reload.")
        await self.activate()

    async def activate(self) -> None:
        try:
            await self._clients.claim()
            self.claimed = True
        except Exception as exc:
            logger.exception("Claiming clients failed")
            self._report(exc, ErrorKind.SERVICE_WORKER_ERROR, "claim clients")
        self.lifecycle = WorkerLifecycle.ACTIVATED
        logger.info("Worker activated.")
        self.start_periodic_checks()

    # -------------------------
    # Periodic checks
    # -------------------------

    @property
    def checking(self) -> bool:
        return self._checker is not None and not self._checker.done()

    def start_periodic_checks(self) -> None:
        """
        (Re)start the pending-task check cadence on the worker loop.

        Checks right away when the last check is older than one interval, then every
        interval. A heartbeat restarts the cadence if it stalled.
        """
        if self._checker is not None:
            self._checker.cancel()
        loop = asyncio.get_running_loop()
        self._checker = loop.create_task(self._check_loop(), name="worker-checks")
        if self._heartbeat is None or self._heartbeat.done():
            self._heartbeat = loop.create_task(self._heartbeat_loop(), name="worker-heartbeat")
        logger.info("Worker periodic checks started (interval=%.1fs).", self._check_interval)

    def stop_periodic_checks(self) -> None:
        for runner in (self._checker, self._heartbeat):
            if runner is not None and not runner.done():
                runner.cancel()
        self._checker = self._heartbeat = None

    async def _check_loop(self) -> None:
        delay = 0.0
        if self._last_check is not None:
            delay = max(0.0, self._last_check + self._check_interval - time.monotonic())
        while True:
            await asyncio.sleep(delay)
            try:
                await self.check_pending_tasks()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Worker periodic check failed")
            delay = self._check_interval

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            stalled = self._last_check is not None and (
                time.monotonic() - self._last_check > 2 * self._check_interval
            )
            if stalled or not self.checking:
                logger.warning("Worker periodic checks stalled; restarting.")
                self.start_periodic_checks()

    # -------------------------
    # Push
    # -------------------------

    async def on_push(self, raw: bytes | str | dict[str, Any] | None) -> bool:
        """Render the notification for one push delivery. Returns True if shown."""
        payload = parse_push_payload(raw)
        if payload is None and raw not in (None, b"", ""):
            logger.warning("Push payload is not a JSON object; using generic notification")

        content = build_push_notification(payload)
        content = with_data(content, timestamp=now_ms(), source="push")

        try:
            await self._sink.show(content)
        except Exception as exc:
            logger.exception("Rendering push notification failed")
            self._report(exc, ErrorKind.NOTIFICATION_DELIVERY_FAILED, "push render")
            return False

        logger.info("Push notification shown (tag=%s).", content.tag)
        return True

    # -------------------------
    # Clicks
    # -------------------------

    async def on_notification_click(self, notification: dict[str, Any], action: str | None = None) -> ClickIntent:
        tag = str(notification.get("tag") or "")
        data = notification.get("data")
        if not isinstance(data, dict):
            # Only the tag is known: use what this worker rendered under it.
            shown = getattr(self._sink, "visible", {}).get(tag)
            data = dict(shown.data) if shown is not None else {}

        if tag:
            try:
                await self._sink.close(tag)
            except Exception:
                logger.debug("Closing notification %s failed.", tag, exc_info=True)

        route = resolve_click_route(data, action)
        task_id = data.get("taskId")
        intent = ClickIntent(
            route=route,
            task_id=str(task_id) if task_id else None,
            action=action,
            timestamp=now_ms(),
        )
        self.click_intents.append(intent)

        if route is not None:
            await self._focus_or_open(route)
            self._broadcast(make_message(MessageType.NOTIFICATION_CLICKED, route=route, taskId=intent.task_id))
        return intent

    async def _focus_or_open(self, route: str) -> None:
        try:
            windows = list(self._clients.match_all())
            if windows:
                # Reuse an open window: no duplicate windows for one click.
                window = windows[0]
                await window.navigate(route)
                await window.focus()
                return
            await self._clients.open_window(route)
        except Exception as exc:
            logger.exception("Routing notification click to %s failed", route)
            self._report(exc, ErrorKind.SERVICE_WORKER_ERROR, "notification click routing")

    # -------------------------
    # Messages
    # -------------------------

    async def on_message(self, message: JsonMessage, reply: Reply | None = None) -> None:
        kind = message.get("type")
        logger.debug("Worker message: %s", kind)

        if kind == MessageType.PING:
            if reply is not None:
                reply(pong())
            return

        if kind in (MessageType.APP_FOREGROUND, MessageType.APP_BACKGROUND):
            self.client_state.in_background = kind == MessageType.APP_BACKGROUND
            self.client_state.last_activity = int(message.get("timestamp") or now_ms())
            return

        if kind == MessageType.REGISTER_PUSH:
            sub = message.get("subscription")
            self.client_state.push_subscription = sub if isinstance(sub, dict) else None
            return

        if kind == MessageType.SYNC_TASKS:
            self._sync_tasks(message)
            if reply is not None:
                reply(make_message(MessageType.SYNC_COMPLETE, count=len(self._tasks), timestamp=now_ms()))
            return

        if kind == MessageType.CHECK_PENDING_TASKS:
            shown = await self.check_pending_tasks()
            if reply is not None:
                reply(make_message(MessageType.SYNC_COMPLETE, notified=shown, timestamp=now_ms()))
            return

        if kind == MessageType.TEST_NOTIFICATION:
            content = build_test_notification(self._clock(), title=message.get("title"), body=message.get("body"))
            try:
                await self._sink.show(content)
            except Exception as exc:
                logger.exception("Test notification failed")
                self._report(exc, ErrorKind.NOTIFICATION_DELIVERY_FAILED, "test notification")
            return

        logger.info("Ignoring unknown worker message type %r", kind)

    def _sync_tasks(self, message: JsonMessage) -> None:
        raw_tasks = message.get("tasks")
        tasks: list[Task] = []
        if isinstance(raw_tasks, list):
            for raw in raw_tasks:
                if isinstance(raw, dict):
                    tasks.append(Task.from_dict(raw))
        self._tasks = tasks
        self._config = NotificationConfig.from_dict(message.get("config"))
        self._permission = PermissionState.parse(message.get("permission"))
        logger.info("Worker synced %d task(s).", len(tasks))

    async def check_pending_tasks(self) -> list[str]:
        """Background counterpart of the foreground tick, over the synced snapshot."""
        self.checks += 1
        self._last_check = time.monotonic()
        if not self._config.enabled:
            return []
        if self._permission is not PermissionState.GRANTED:
            logger.debug("Notification permission is %s; skipping background check", self._permission.value)
            return []

        now = self._clock()
        current_ms = now.timestamp() * 1000.0
        shown: list[str] = []

        for task in evaluate(now, self._tasks, self._config):
            if not self._dedup.should_notify(task.id, current_ms):
                continue
            instant = due_instant(task) or now
            content = with_data(
                build_task_notification(task, now, time_until_ms(now, instant)),
                source="scheduled-task",
            )
            try:
                await self._sink.show(content)
            except Exception as exc:
                logger.exception("Background reminder for task %s failed", task.id)
                self._report(exc, ErrorKind.BACKGROUND_SYNC_ERROR, f"task {task.id}")
                continue
            self._dedup.record(task.id, current_ms)
            shown.append(task.id)
        return shown

    # -------------------------
    # Outbound
    # -------------------------

    def _broadcast(self, message: JsonMessage) -> None:
        for window in self._clients.match_all():
            try:
                window.post_message(message)
            except Exception:
                logger.debug("post_message to %s failed.", getattr(window, "client_id", "?"), exc_info=True)

    def _report(self, exc: BaseException, default: ErrorKind, context: str) -> None:
        kind = classify_exception(exc, default)
        self._broadcast(
            make_message(
                MessageType.ERROR_REPORT,
                errorType=kind.value,
                message=f"{context}: {exc!r}",
                timestamp=now_ms(),
            )
        )
