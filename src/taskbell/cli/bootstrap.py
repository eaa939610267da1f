# src/taskbell/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (sinks, stores, gate, scheduler, push),
- starts and stops the two event loops (application + background worker).
"""

from __future__ import annotations

import logging

from ..config import Settings, get_settings
from ..connectors.console_connector import ConsoleAdvisor, ConsoleClients, ConsoleNotifier, print_notification
from ..connectors.desktop_notifier import DesktopNotifier
from ..core.device import DeviceCapabilities
from ..core.loop import start_background_loop
from ..core.ports import NotificationSink
from ..core.state import AppState
from ..diagnostics.monitor import ErrorMonitor
from ..notifications.permission import PermissionGate
from ..notifications.scheduler import ForegroundScheduler
from ..notifications.sound import SoundPlayer
from ..push.subscription import PushSubscriptionClient
from ..storage.json_store import DataDirStorage, FilePermissionPlatform, JsonConfigStore, JsonTaskSource
from ..worker.background import BackgroundWorker
from ..worker.runner import make_foreground_handler, start_worker_in_background

logger = logging.getLogger(__name__)

SYNC_TIMEOUT_SECONDS = 5.0


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_path.parent.mkdir(parents=True, exist_ok=True)
    settings.notification_config_path.parent.mkdir(parents=True, exist_ok=True)
    settings.error_history_path.parent.mkdir(parents=True, exist_ok=True)


def _make_sink(settings: Settings) -> NotificationSink:
    if settings.desktop_notifications:
        return DesktopNotifier(settings.app_name, echo=print_notification)
    return ConsoleNotifier()


def create_initial_state(*, settings: Settings | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    sink = _make_sink(settings)

    device = DeviceCapabilities.detect_host(
        notification_supported=True,
        push_supported=settings.push_server_url is not None,
    )
    monitor = ErrorMonitor(
        max_entries=settings.error_history_size,
        device_info=device.device_info(),
        history_path=settings.error_history_path,
    )
    advisor = ConsoleAdvisor()
    permission_platform = FilePermissionPlatform(settings.permission_path)
    gate = PermissionGate(permission_platform, device, advisor, monitor=monitor)

    tasks = JsonTaskSource(settings.tasks_path)
    config_store = JsonConfigStore(settings.notification_config_path)
    sound = SoundPlayer(enabled=settings.sound_enabled)

    scheduler = ForegroundScheduler(
        tasks=tasks,
        config=config_store,
        sink=sink,
        gate=gate,
        monitor=monitor,
        sound=sound,
        interval_seconds=settings.poll_interval_seconds,
    )

    push = None
    if settings.push_server_url:
        push = PushSubscriptionClient(
            settings.push_server_url,
            monitor,
            timeout_seconds=settings.push_timeout_seconds,
        )

    return AppState(
        settings=settings,
        device=device,
        monitor=monitor,
        advisor=advisor,
        sink=sink,
        sound=sound,
        tasks=tasks,
        config_store=config_store,
        permission_platform=permission_platform,
        storage=DataDirStorage(settings.data_dir),
        gate=gate,
        scheduler=scheduler,
        push=push,
    )


def start_services(state: AppState) -> None:
    """Start the background worker (optional) and the application loop with the scheduler."""
    if state.settings.worker_enabled:
        clients = ConsoleClients(make_foreground_handler(state.monitor))
        # Own sink instance; state.sink stays on the app loop.
        worker = BackgroundWorker(
            sink=_make_sink(state.settings),
            clients=clients,
            check_interval_seconds=state.settings.worker_check_interval_seconds,
        )
        state.worker = start_worker_in_background(worker, monitor=state.monitor)
        if state.worker is None:
            state.advisor.warning("Background worker could not be started. Reminders only run in the foreground.")
        elif state.push is not None:
            state.push.attach_worker(state.worker)
    else:
        logger.info("Background worker disabled, not starting.")

    state.app_loop = start_background_loop("app")
    if state.app_loop is None:
        raise RuntimeError("application loop did not start")
    state.app_loop.call_soon(state.scheduler.start)

    sync_worker(state)


def sync_worker(state: AppState) -> None:
    """Give the worker the current task snapshot and settings for its own checks."""
    if state.worker is None:
        return
    try:
        state.worker.sync_tasks(
            state.tasks.snapshot(),
            state.config_store.load(),
            permission=state.gate.state,
        ).result(timeout=SYNC_TIMEOUT_SECONDS)
    except Exception:
        logger.warning("Task sync to the worker failed", exc_info=True)


def stop_services(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    if state.app_loop is not None:
        try:
            state.app_loop.call_soon(state.scheduler.stop)
        except Exception:
            logger.debug("Scheduler stop signal failed.", exc_info=True)
        state.app_loop.stop()
        state.app_loop.join(timeout=5.0)

    if state.worker is not None:
        state.worker.stop()
        state.worker.join(timeout=5.0)

    state.monitor.flush()
