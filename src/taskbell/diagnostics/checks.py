# src/taskbell/diagnostics/checks.py

"""
On-demand notification diagnostics.

Answers "why am I not getting reminders on this device?" by inspecting the platform
capabilities, the worker registration, the permission value and storage persistence.
Reads only: nothing here changes the state of the objects it inspects.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..core.device import DeviceCapabilities
from ..core.models import PermissionState
from ..core.ports import StorageProbe, WorkerStatusProbe
from ..notifications.permission import PermissionGate

logger = logging.getLogger(__name__)

MIN_IOS_PUSH_VERSION = (16, 4)


class Severity(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"


@dataclass(slots=True, frozen=True)
class DiagnosticIssue:
    severity: Severity
    message: str
    solution: str

    def to_dict(self) -> dict[str, str]:
        return {"severity": self.severity.value, "message": self.message, "solution": self.solution}


@dataclass(slots=True, frozen=True)
class WorkerCheck:
    supported: bool
    registered: bool = False
    active: bool = False
    controlling: bool = False


@dataclass(slots=True)
class DiagnosticReport:
    timestamp: int
    features: dict[str, bool]
    worker: WorkerCheck
    permission: PermissionState
    storage_persisted: bool | None
    issues: list[DiagnosticIssue] = field(default_factory=list)

    @property
    def critical(self) -> list[DiagnosticIssue]:
        return [i for i in self.issues if i.severity is Severity.CRITICAL]

    @property
    def warnings(self) -> list[DiagnosticIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    @property
    def healthy(self) -> bool:
        return not self.critical

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "features": dict(self.features),
            "worker": {
                "supported": self.worker.supported,
                "registered": self.worker.registered,
                "active": self.worker.active,
                "controlling": self.worker.controlling,
            },
            "permission": self.permission.value,
            "storagePersisted": self.storage_persisted,
            "issues": [i.to_dict() for i in self.issues],
        }


async def run_diagnostics(
    capabilities: DeviceCapabilities,
    *,
    worker: WorkerStatusProbe | None,
    permission: PermissionGate,
    storage: StorageProbe | None = None,
) -> DiagnosticReport:
    worker_check = _check_worker(capabilities, worker)
    state = permission.peek()
    persisted = await _check_storage(capabilities, storage)

    report = DiagnosticReport(
        timestamp=int(time.time() * 1000),
        features=capabilities.features(),
        worker=worker_check,
        permission=state,
        storage_persisted=persisted,
    )
    report.issues.extend(_issues(capabilities, worker_check, state, persisted))

    logger.info(
        "Diagnostics: %d critical, %d warning(s)",
        len(report.critical),
        len(report.warnings),
    )
    return report


def _check_worker(capabilities: DeviceCapabilities, probe: WorkerStatusProbe | None) -> WorkerCheck:
    if not capabilities.worker_supported:
        return WorkerCheck(supported=False)
    if probe is None:
        return WorkerCheck(supported=True)
    try:
        reg = probe.registration()
    except Exception:
        logger.exception("Worker registration check failed")
        return WorkerCheck(supported=True)
    return WorkerCheck(
        supported=True,
        registered=bool(getattr(reg, "registered", False)),
        active=bool(getattr(reg, "active", False)),
        controlling=bool(getattr(reg, "controlling", False)),
    )


async def _check_storage(capabilities: DeviceCapabilities, probe: StorageProbe | None) -> bool | None:
    if not capabilities.persistent_storage_supported or probe is None:
        return None
    try:
        return bool(await probe.persisted())
    except Exception:
        logger.exception("Persistent storage check failed")
        return False


def _issues(
    caps: DeviceCapabilities,
    worker: WorkerCheck,
    permission: PermissionState,
    persisted: bool | None,
) -> list[DiagnosticIssue]:
    issues: list[DiagnosticIssue] = []

    if not caps.worker_supported:
        issues.append(
            DiagnosticIssue(
                Severity.CRITICAL,
                "Background worker is not supported",
                "Use an up-to-date browser or run the desktop application.",
            )
        )

    if not caps.notification_supported:
        issues.append(
            DiagnosticIssue(
                Severity.CRITICAL,
                "Notifications are not supported",
                "Install a notification backend or use a platform with notification support.",
            )
        )

    if not caps.push_supported:
        issues.append(
            DiagnosticIssue(
                Severity.WARNING,
                "Push messages are not supported",
                "Reminders only arrive while the application is running.",
            )
        )

    if caps.is_ios and not caps.is_standalone:
        issues.append(
            DiagnosticIssue(
                Severity.WARNING,
                "iOS: the app is not installed on the home screen",
                "Add the app to the home screen (Share -> Add to Home Screen).",
            )
        )

    if permission is PermissionState.DENIED:
        issues.append(
            DiagnosticIssue(
                Severity.CRITICAL,
                "Notification permission denied",
                "Allow notifications for this app in your system or browser settings.",
            )
        )

    if caps.worker_supported and not worker.registered:
        issues.append(
            DiagnosticIssue(
                Severity.CRITICAL,
                "Background worker is not registered",
                "Restart the application; check the log for worker registration errors.",
            )
        )

    if persisted is False:
        issues.append(
            DiagnosticIssue(
                Severity.WARNING,
                "Storage is not persistent",
                "Data may be evicted by the system. Make sure the data directory is writable.",
            )
        )

    if caps.is_ios and caps.ios_version is not None and caps.ios_version < MIN_IOS_PUSH_VERSION:
        major, minor = caps.ios_version
        issues.append(
            DiagnosticIssue(
                Severity.WARNING,
                f"iOS {major}.{minor} has limited notification support",
                "Update to iOS 16.4 or later for web push notifications.",
            )
        )

    return issues


def format_report(report: DiagnosticReport) -> str:
    """Human-readable summary for the console."""
    lines = [
        f"permission: {report.permission.value}",
        "worker: "
        + (
            "unsupported"
            if not report.worker.supported
            else f"registered={report.worker.registered} active={report.worker.active} "
            f"controlling={report.worker.controlling}"
        ),
        "storage persisted: " + ("n/a" if report.storage_persisted is None else str(report.storage_persisted)),
        "features: " + ", ".join(f"{k}={'yes' if v else 'no'}" for k, v in report.features.items()),
    ]
    if not report.issues:
        lines.append("No problems found.")
    for issue in report.issues:
        lines.append(f"[{issue.severity.value}] {issue.message}\n    -> {issue.solution}")
    return "\n".join(lines)
