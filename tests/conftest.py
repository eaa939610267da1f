# tests/conftest.py

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskbell.core.device import DeviceCapabilities
from taskbell.core.models import PermissionState
from taskbell.core.state import AppState
from taskbell.diagnostics.monitor import ErrorMonitor
from taskbell.notifications.permission import PermissionGate
from taskbell.notifications.scheduler import ForegroundScheduler
from taskbell.notifications.sound import SoundPlayer
from taskbell.storage.json_store import DataDirStorage, FilePermissionPlatform, JsonConfigStore, JsonTaskSource

from .fakes import FakeAdvisor, FakePermissionPlatform, FakeSink

NOW = datetime(2025, 3, 14, 9, 0, 0)


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def desktop() -> DeviceCapabilities:
    return DeviceCapabilities.detect_host(notification_supported=True, push_supported=True)


@pytest.fixture()
def monitor(desktop: DeviceCapabilities) -> ErrorMonitor:
    return ErrorMonitor(max_entries=50, device_info=desktop.device_info())


@pytest.fixture()
def advisor() -> FakeAdvisor:
    return FakeAdvisor()


@pytest.fixture()
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture()
def granted_gate(desktop: DeviceCapabilities, advisor: FakeAdvisor, monitor: ErrorMonitor) -> PermissionGate:
    return PermissionGate(FakePermissionPlatform(PermissionState.GRANTED), desktop, advisor, monitor=monitor)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskbell-test",
        data_dir=tmp_path,
        tasks_path=tmp_path / "tasks.json",
        notification_config_path=tmp_path / "notification_config.json",
        permission_path=tmp_path / "permission.json",
        error_history_path=tmp_path / "error_history.json",
        export_dir=tmp_path / "exports",
        poll_interval_seconds=30.0,
        error_history_size=50,
        worker_ping_timeout_seconds=0.5,
        push_server_url=None,
    )


@pytest.fixture()
def state(settings: SimpleNamespace, desktop: DeviceCapabilities) -> AppState:
    """
    AppState wired with file-backed stores under tmp_path and a recording sink.

    No loops are started: commands that need the application loop are tested elsewhere.
    """
    monitor = ErrorMonitor(max_entries=settings.error_history_size, device_info=desktop.device_info())
    advisor = FakeAdvisor()
    platform = FilePermissionPlatform(settings.permission_path, prompt_fn=lambda _: "y")
    gate = PermissionGate(platform, desktop, advisor, monitor=monitor)
    tasks = JsonTaskSource(settings.tasks_path)
    config_store = JsonConfigStore(settings.notification_config_path)
    sink = FakeSink()
    sound = SoundPlayer(enabled=False)

    return AppState(
        settings=settings,  # type: ignore[arg-type]
        device=desktop,
        monitor=monitor,
        advisor=advisor,
        sink=sink,
        sound=sound,
        tasks=tasks,
        config_store=config_store,
        permission_platform=platform,
        storage=DataDirStorage(settings.data_dir),
        gate=gate,
        scheduler=ForegroundScheduler(
            tasks=tasks,
            config=config_store,
            sink=sink,
            gate=gate,
            monitor=monitor,
            sound=sound,
        ),
    )
