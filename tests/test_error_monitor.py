# tests/test_error_monitor.py

from __future__ import annotations

import asyncio
import json
import threading
from datetime import date
from pathlib import Path

import httpx
import pytest

from taskbell.core.models import DeviceInfo, ErrorKind
from taskbell.diagnostics.monitor import ErrorMonitor
from taskbell.errors import DeliveryError


def test_history_keeps_only_the_most_recent_entries_in_order() -> None:
    n = 5
    monitor = ErrorMonitor(max_entries=n)

    for i in range(n + 5):
        monitor.record(ErrorKind.UNKNOWN, f"error {i}", timestamp=i)

    history = monitor.history()
    assert [r.message for r in history] == [f"error {i}" for i in range(5, 10)]
    assert [r.timestamp for r in history] == sorted(r.timestamp for r in history)


def test_history_limit() -> None:
    monitor = ErrorMonitor()
    for i in range(4):
        monitor.record(ErrorKind.NETWORK_ERROR, str(i))

    assert [r.message for r in monitor.history(2)] == ["2", "3"]
    assert monitor.history(0) == []


def test_record_exception_classifies() -> None:
    monitor = ErrorMonitor(device_info=DeviceInfo(is_android=True))

    monitor.record_exception(DeliveryError("boom"), context="task 1")
    monitor.record_exception(httpx.ConnectError("refused"))
    monitor.record_exception(PermissionError("nope"))
    monitor.record_exception(ValueError("other"), ErrorKind.BACKGROUND_SYNC_ERROR)

    assert [r.type for r in monitor.history()] == [
        ErrorKind.NOTIFICATION_DELIVERY_FAILED,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.PERMISSION_DENIED,
        ErrorKind.BACKGROUND_SYNC_ERROR,
    ]
    first = monitor.history()[0]
    assert first.message.startswith("task 1: ")
    assert first.device_info == DeviceInfo(is_android=True)


def test_clear() -> None:
    monitor = ErrorMonitor()
    monitor.record(ErrorKind.UNKNOWN, "x")
    monitor.clear()
    assert len(monitor) == 0


def test_export_file_name_and_content(tmp_path: Path) -> None:
    monitor = ErrorMonitor(device_info=DeviceInfo(is_ios=True, is_pwa=True))
    monitor.record(ErrorKind.SUBSCRIPTION_FAILED, "HTTP 500", {"status": 500}, timestamp=1_700_000_000_000)

    path = monitor.export(tmp_path / "exports", today=date(2025, 3, 14))

    assert path.name == "notification-errors-2025-03-14.json"
    data = json.loads(path.read_text("utf-8"))
    assert data == [
        {
            "type": "subscription_failed",
            "message": "HTTP 500",
            "timestamp": 1_700_000_000_000,
            "deviceInfo": {"isIOS": True, "isAndroid": False, "isSafari": False, "isPWA": True},
            "details": {"status": 500},
        }
    ]


def test_history_survives_restart(tmp_path: Path) -> None:
    path = tmp_path / "errors.json"
    first = ErrorMonitor(max_entries=3, history_path=path)
    for i in range(5):
        first.record(ErrorKind.UNKNOWN, str(i))

    second = ErrorMonitor(max_entries=2, history_path=path)
    assert [r.message for r in second.history()] == ["3", "4"]

    second.clear()
    assert not path.exists()


def test_corrupt_history_file_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "errors.json"
    path.write_text("{not json", "utf-8")
    assert len(ErrorMonitor(history_path=path)) == 0


def test_malformed_history_records_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "errors.json"
    path.write_text(
        json.dumps(
            [
                {"type": "network_error", "message": "offline", "timestamp": 5},
                {"type": "unknown", "message": "x", "timestamp": "yesterday"},
                {"timestamp": None},
                "junk",
            ]
        ),
        "utf-8",
    )

    monitor = ErrorMonitor(history_path=path)

    assert [(r.type, r.message, r.timestamp) for r in monitor.history()] == [
        (ErrorKind.NETWORK_ERROR, "offline", 5)
    ]


@pytest.mark.asyncio
async def test_records_on_an_event_loop_are_written_off_the_loop(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "errors.json"
    monitor = ErrorMonitor(history_path=path)
    writers: list[int] = []
    save = monitor._save

    def tracking_save() -> None:
        writers.append(threading.get_ident())
        save()

    monkeypatch.setattr(monitor, "_save", tracking_save)

    monitor.record(ErrorKind.UNKNOWN, "a")
    monitor.record(ErrorKind.UNKNOWN, "b")

    for _ in range(200):
        if path.exists() and len(json.loads(path.read_text("utf-8"))) == 2:
            break
        await asyncio.sleep(0.01)

    assert [r["message"] for r in json.loads(path.read_text("utf-8"))] == ["a", "b"]
    assert writers and threading.get_ident() not in writers


def test_concurrent_records_are_all_kept() -> None:
    monitor = ErrorMonitor(max_entries=1000)

    def burst() -> None:
        for _ in range(100):
            monitor.record(ErrorKind.UNKNOWN, "x")

    threads = [threading.Thread(target=burst) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(monitor) == 400


def test_invalid_capacity() -> None:
    with pytest.raises(ValueError):
        ErrorMonitor(max_entries=0)
