# src/taskbell/worker/runner.py

from __future__ import annotations

"""
Hosting the background worker.

The worker runs on its own thread with its own event loop, like a separate process would.
The application only talks to it through JSON messages (post_message) and platform
events (dispatch_push / dispatch_click). Replies come back as concurrent futures.
"""

import concurrent.futures
import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from ..core.loop import BackgroundLoop, start_background_loop
from ..core.models import ErrorKind, NotificationConfig, PermissionState, Task
from ..core.ports import JsonMessage
from ..diagnostics.monitor import ErrorMonitor
from ..errors import WorkerError
from .background import BackgroundWorker, ClickIntent, WorkerLifecycle
from .protocol import MessageType, decode, encode, make_message, now_ms

logger = logging.getLogger(__name__)

INSTALL_TIMEOUT_SECONDS = 5.0


@dataclass(slots=True, frozen=True)
class WorkerRegistration:
    """What diagnostics can see of the worker: is it there, running and in control."""

    registered: bool
    active: bool
    controlling: bool
    lifecycle: str = WorkerLifecycle.NEW.value


NOT_REGISTERED = WorkerRegistration(registered=False, active=False, controlling=False)


class WorkerHost:
    def __init__(self, worker: BackgroundWorker, background: BackgroundLoop) -> None:
        self._worker = worker
        self._bg = background

    @property
    def worker(self) -> BackgroundWorker:
        return self._worker

    def registration(self) -> WorkerRegistration:
        alive = self._bg.alive
        return WorkerRegistration(
            registered=alive,
            active=alive and self._worker.lifecycle is WorkerLifecycle.ACTIVATED,
            controlling=alive and self._worker.claimed,
            lifecycle=self._worker.lifecycle.value,
        )

    # -------------------------
    # Messaging
    # -------------------------

    def post_message(self, message: JsonMessage) -> concurrent.futures.Future[JsonMessage | None]:
        """
        Send a message to the worker. The future resolves to the worker's reply
        (None when the message type has no reply).
        """
        return self._bg.submit(self._deliver(encode(message)))

    async def _deliver(self, raw: str) -> JsonMessage | None:
        message = decode(raw)
        if message is None:
            logger.warning("Dropping malformed worker message: %.200s", raw)
            return None

        replies: list[JsonMessage] = []

        def reply(msg: JsonMessage) -> None:
            if not replies:
                # Replies cross the channel too: never hand out live worker objects.
                replies.append(decode(encode(msg)) or {})

        await self._worker.on_message(message, reply)
        return replies[0] if replies else None

    def ping(self, timeout: float = 2.0) -> bool:
        """Liveness probe: True if the worker answered PONG within `timeout` seconds."""
        try:
            answer = self.post_message(make_message(MessageType.PING, timestamp=now_ms())).result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            logger.warning("Worker did not answer PING within %.1fs", timeout)
            return False
        except Exception:
            logger.warning("Worker PING failed", exc_info=True)
            return False
        return bool(answer) and answer.get("type") == MessageType.PONG

    def sync_tasks(
        self,
        tasks: Sequence[Task],
        config: NotificationConfig,
        *,
        permission: PermissionState = PermissionState.DEFAULT,
    ) -> concurrent.futures.Future[JsonMessage | None]:
        return self.post_message(
            make_message(
                MessageType.SYNC_TASKS,
                tasks=[t.to_dict() for t in tasks],
                config=config.to_dict(),
                permission=permission.value,
                timestamp=now_ms(),
            )
        )

    def notify_visibility(self, *, foreground: bool) -> concurrent.futures.Future[JsonMessage | None]:
        kind = MessageType.APP_FOREGROUND if foreground else MessageType.APP_BACKGROUND
        return self.post_message(make_message(kind, timestamp=now_ms()))

    # -------------------------
    # Platform events
    # -------------------------

    def dispatch_push(self, raw: bytes | str | dict[str, Any] | None) -> concurrent.futures.Future[bool]:
        if isinstance(raw, dict):
            raw = encode(raw)
        return self._bg.submit(self._worker.on_push(raw))

    def dispatch_click(
        self, notification: dict[str, Any], action: str | None = None
    ) -> concurrent.futures.Future[ClickIntent]:
        notification = decode(encode({"type": "click", **notification})) or {}
        return self._bg.submit(self._worker.on_notification_click(notification, action))

    # -------------------------
    # Shutdown
    # -------------------------

    def stop(self) -> None:
        try:
            self._bg.call_soon(self._worker.stop_periodic_checks)
        except RuntimeError:
            logger.debug("Worker loop already closed.")
        self._bg.stop()

    def join(self, timeout: float | None = None) -> None:
        self._bg.join(timeout=timeout)


def start_worker_in_background(
    worker: BackgroundWorker,
    *,
    monitor: ErrorMonitor | None = None,
    install_timeout: float = INSTALL_TIMEOUT_SECONDS,
) -> WorkerHost | None:
    """
    Register the worker: start its loop, run install + activate, and hand back the host.

    Returns None if registration failed (recorded as a service worker error); the app
    keeps running with foreground reminders only.
    """
    bg = start_background_loop("worker")
    if bg is None:
        _record_failure(monitor, WorkerError("worker thread did not start"))
        return None

    try:
        bg.submit(worker.install()).result(timeout=install_timeout)
    except Exception as exc:
        logger.exception("Worker registration failed")
        bg.stop()
        _record_failure(monitor, exc)
        return None

    logger.info("Worker registered (lifecycle=%s).", worker.lifecycle.value)
    return WorkerHost(worker, bg)


def _record_failure(monitor: ErrorMonitor | None, exc: BaseException) -> None:
    if monitor is not None:
        monitor.record_exception(exc, ErrorKind.SERVICE_WORKER_ERROR, context="worker registration")


def make_foreground_handler(
    monitor: ErrorMonitor,
    *,
    on_route: Callable[[str], None] | None = None,
) -> Callable[[JsonMessage], None]:
    """
    Build the application-side handler for messages posted by the worker.

    ERROR_REPORT messages land in the ErrorMonitor, so worker failures show up in the
    same history as foreground ones.
    """

    def handle(message: JsonMessage) -> None:
        kind = message.get("type")

        if kind == MessageType.ERROR_REPORT:
            details: dict[str, Any] = {"source": "worker"}
            if message.get("timestamp") is not None:
                details["reportedAt"] = message.get("timestamp")
            monitor.record(
                ErrorKind.parse(message.get("errorType")),
                str(message.get("message") or "worker error"),
                details,
            )
            return

        if kind == MessageType.NOTIFICATION_CLICKED:
            route = message.get("route")
            if isinstance(route, str) and on_route is not None:
                on_route(route)
            return

        logger.debug("Unhandled worker message: %s", kind)

    return handle
