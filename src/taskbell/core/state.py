# src/taskbell/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Coroutine, Optional, TypeVar

from .device import DeviceCapabilities

if TYPE_CHECKING:
    from ..config import Settings
    from ..diagnostics.monitor import ErrorMonitor
    from ..notifications.permission import PermissionGate
    from ..notifications.scheduler import ForegroundScheduler
    from ..notifications.sound import SoundPlayer
    from ..push.subscription import PushSubscriptionClient
    from ..storage.json_store import DataDirStorage, FilePermissionPlatform, JsonConfigStore, JsonTaskSource
    from ..worker.runner import WorkerHost
    from .loop import BackgroundLoop
    from .ports import Advisor, NotificationSink

T = TypeVar("T")

DEFAULT_CALL_TIMEOUT = 30.0


@dataclass
class AppState:
    """Everything the connectors and commands need, wired once by cli.bootstrap."""

    settings: Settings
    device: DeviceCapabilities

    monitor: ErrorMonitor
    advisor: Advisor
    sink: NotificationSink
    sound: SoundPlayer

    tasks: JsonTaskSource
    config_store: JsonConfigStore
    permission_platform: FilePermissionPlatform
    storage: DataDirStorage

    gate: PermissionGate
    scheduler: ForegroundScheduler

    push: Optional[PushSubscriptionClient] = None
    worker: Optional[WorkerHost] = None
    app_loop: Optional[BackgroundLoop] = None

    # Console commands and background callbacks may touch state at the same time.
    lock: threading.RLock = field(default_factory=threading.RLock)

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = DEFAULT_CALL_TIMEOUT) -> T:
        """Run a coroutine on the application loop from a synchronous caller."""
        if self.app_loop is None:
            coro.close()
            raise RuntimeError("application loop is not running")
        return self.app_loop.submit(coro).result(timeout=timeout)
