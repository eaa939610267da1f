# tests/test_bootstrap.py

from __future__ import annotations

import json
import time
from datetime import date, datetime
from datetime import time as dtime
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskbell.cli.bootstrap import create_initial_state, start_services, stop_services
from taskbell.cli.commands import registry
from taskbell.connectors.console_connector import ConsoleNotifier
from taskbell.core.models import Task
from taskbell.notifications.content import build_task_notification


@pytest.fixture()
def app_settings(tmp_path: Path) -> SimpleNamespace:
    return SimpleNamespace(
        app_name="taskbell-test",
        log_level="INFO",
        console_enabled=False,
        desktop_notifications=False,
        sound_enabled=False,
        data_dir=tmp_path,
        tasks_path=tmp_path / "tasks.json",
        notification_config_path=tmp_path / "notification_config.json",
        permission_path=tmp_path / "permission.json",
        error_history_path=tmp_path / "error_history.json",
        export_dir=tmp_path / "exports",
        poll_interval_seconds=60.0,
        error_history_size=50,
        worker_enabled=True,
        worker_ping_timeout_seconds=2.0,
        worker_check_interval_seconds=900.0,
        push_server_url=None,
        push_timeout_seconds=1.0,
    )


def test_services_start_talk_and_stop(app_settings: SimpleNamespace) -> None:
    app_settings.permission_path.write_text(json.dumps({"state": "granted"}), "utf-8")
    app_settings.tasks_path.write_text(
        json.dumps([{"id": "1", "title": "Far away", "dueDate": "2099-01-01", "dueTime": "10:00"}]),
        "utf-8",
    )

    state = create_initial_state(settings=app_settings)  # type: ignore[arg-type]
    assert isinstance(state.sink, ConsoleNotifier)
    assert state.push is None

    start_services(state)
    try:
        assert state.worker is not None
        assert state.app_loop is not None

        deadline = time.monotonic() + 2.0
        while not state.scheduler.running and time.monotonic() < deadline:
            time.sleep(0.01)
        assert state.scheduler.running

        assert registry.handle(state, "/ping") == "PONG: worker is active."
        assert registry.handle(state, "/check") == "No reminders due right now."
        assert (registry.handle(state, "/sync") or "").startswith("Synced 1 task(s)")

        worker = state.worker.worker
        assert worker.sink is not state.sink
        deadline = time.monotonic() + 2.0
        while worker.checks == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert worker.checks >= 1
        assert worker.checking

        assert registry.handle(state, '/push {"notification": {"title": "Hello", "body": "from push"}}') == "Push rendered."
        assert "task" in worker.sink.visible
        assert "task" not in state.sink.visible
        assert registry.handle(state, "/click task view") == "Opened /"

        due = Task(id="7", title="Standup", due_date=date(2099, 1, 1), due_time=dtime(10, 0))
        state.run(state.sink.show(build_task_notification(due, datetime(2099, 1, 1, 9, 30), 1_800_000)))
        assert registry.handle(state, "/click task-7 view") == "Opened /tasks?id=7&action=view"
        assert "task-7" not in state.sink.visible

        diag = registry.handle(state, "/diag") or ""
        assert "permission: granted" in diag
        assert "Background worker is not registered" not in diag
    finally:
        stop_services(state)

    assert not state.app_loop.alive


def test_malformed_error_history_does_not_block_startup(app_settings: SimpleNamespace) -> None:
    app_settings.error_history_path.write_text(json.dumps([{"timestamp": None}]), "utf-8")

    state = create_initial_state(settings=app_settings)  # type: ignore[arg-type]

    assert len(state.monitor) == 0
