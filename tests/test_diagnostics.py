# tests/test_diagnostics.py

from __future__ import annotations

from dataclasses import replace

import pytest

from taskbell.core.device import DeviceCapabilities
from taskbell.core.models import PermissionState
from taskbell.diagnostics.checks import Severity, format_report, run_diagnostics
from taskbell.notifications.permission import PermissionGate

from .fakes import FakePermissionPlatform, FakeRegistration, FakeStorage, FakeWorkerProbe

IPHONE_15_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 15_7 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/15.6 Mobile/15E148 Safari/604.1"
)


def _gate(device, advisor, state=PermissionState.GRANTED) -> PermissionGate:
    return PermissionGate(FakePermissionPlatform(state), device, advisor)


@pytest.mark.asyncio
async def test_healthy_desktop_has_no_issues(desktop, advisor) -> None:
    report = await run_diagnostics(
        desktop,
        worker=FakeWorkerProbe(),
        permission=_gate(desktop, advisor),
        storage=FakeStorage(True),
    )
    assert report.issues == []
    assert report.healthy
    assert report.permission is PermissionState.GRANTED
    assert "No problems found." in format_report(report)


@pytest.mark.asyncio
async def test_no_worker_support_is_critical_and_skips_registration_check(desktop, advisor) -> None:
    caps = replace(desktop, worker_supported=False)
    probe = FakeWorkerProbe()

    report = await run_diagnostics(caps, worker=probe, permission=_gate(caps, advisor), storage=FakeStorage())

    assert probe.calls == 0
    assert report.worker.supported is False
    messages = [i.message for i in report.critical]
    assert messages == ["Background worker is not supported"]


@pytest.mark.asyncio
async def test_denied_permission_and_unregistered_worker_are_critical(desktop, advisor) -> None:
    report = await run_diagnostics(
        desktop,
        worker=FakeWorkerProbe(FakeRegistration(registered=False, active=False, controlling=False)),
        permission=_gate(desktop, advisor, PermissionState.DENIED),
        storage=FakeStorage(True),
    )
    assert {i.message for i in report.critical} == {
        "Notification permission denied",
        "Background worker is not registered",
    }
    assert not report.healthy


@pytest.mark.asyncio
async def test_peek_does_not_change_gate_state(desktop, advisor) -> None:
    platform = FakePermissionPlatform(PermissionState.DEFAULT)
    gate = PermissionGate(platform, desktop, advisor)

    await run_diagnostics(desktop, worker=FakeWorkerProbe(), permission=gate)

    assert gate.prompted_this_session is False
    assert platform.prompts == 0


@pytest.mark.asyncio
async def test_old_ios_in_browser_collects_warnings(advisor) -> None:
    caps = DeviceCapabilities.from_user_agent(IPHONE_15_UA, push_supported=False)
    assert caps.ios_version == (15, 7)

    report = await run_diagnostics(
        caps,
        worker=FakeWorkerProbe(),
        permission=_gate(caps, advisor),
        storage=FakeStorage(False),
    )

    warnings = {i.message for i in report.warnings}
    assert warnings == {
        "Push messages are not supported",
        "iOS: the app is not installed on the home screen",
        "Storage is not persistent",
        "iOS 15.7 has limited notification support",
    }
    assert report.critical == []
    assert all(i.severity is Severity.WARNING for i in report.warnings)
    assert report.to_dict()["features"]["isIOS"] is True


@pytest.mark.asyncio
async def test_missing_notification_support_is_critical(desktop, advisor) -> None:
    caps = replace(desktop, notification_supported=False)
    report = await run_diagnostics(caps, worker=FakeWorkerProbe(), permission=_gate(caps, advisor))

    # an unsupported platform also reads as denied
    assert {i.message for i in report.critical} == {
        "Notifications are not supported",
        "Notification permission denied",
    }
