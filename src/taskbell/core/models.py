# src/taskbell/core/models.py

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, time
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


class LeadTimeUnit(StrEnum):
    MINUTES = "minutes"
    HOURS = "hours"

    @classmethod
    def parse(cls, raw: Any) -> LeadTimeUnit:
        if not raw:
            return cls.MINUTES
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            logger.warning("Unknown lead time unit %r, using minutes", raw)
            return cls.MINUTES


class PermissionState(StrEnum):
    """
    Notification permission lifecycle.

    UNKNOWN is only ever seen before the platform was queried for the first time.
    """

    UNKNOWN = "unknown"
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"

    @classmethod
    def parse(cls, raw: Any) -> PermissionState:
        if not raw:
            return cls.DEFAULT
        try:
            state = cls(str(raw).strip().lower())
        except ValueError:
            return cls.DEFAULT
        return cls.DEFAULT if state is cls.UNKNOWN else state


class ConnectionState(StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"
    SLOW = "slow"
    METERED = "metered"
    UNKNOWN = "unknown"


class ErrorKind(StrEnum):
    """Classification of delivery/registration failures (not concrete exception types)."""

    PERMISSION_DENIED = "permission_denied"
    SUBSCRIPTION_FAILED = "subscription_failed"
    NETWORK_ERROR = "network_error"
    SERVICE_WORKER_ERROR = "service_worker_error"
    BACKGROUND_SYNC_ERROR = "background_sync_error"
    NOTIFICATION_DELIVERY_FAILED = "notification_delivery_failed"
    DEVICE_SPECIFIC = "device_specific"
    UNSUPPORTED_BROWSER = "unsupported_browser"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Any) -> ErrorKind:
        try:
            return cls(str(raw))
        except ValueError:
            return cls.UNKNOWN


def parse_flag(raw: Any, default: bool) -> bool:
    """JSON booleans only; "true"/"false" strings are tolerated, anything else keeps the default."""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        s = raw.strip().lower()
        if s in {"true", "1", "yes"}:
            return True
        if s in {"false", "0", "no"}:
            return False
    if raw is not None:
        logger.warning("Invalid flag value %r, using %s", raw, default)
    return default


def parse_due_date(raw: Any) -> date | None:
    """Parse 'YYYY-MM-DD' from calendar fields. Invalid input -> None (task never eligible)."""
    if isinstance(raw, date):
        return raw
    if not raw:
        return None
    m = _DATE_RE.match(str(raw).strip())
    if not m:
        logger.warning("Invalid due date %r (expected YYYY-MM-DD)", raw)
        return None
    year, month, day = (int(g) for g in m.groups())
    try:
        return date(year, month, day)
    except ValueError:
        logger.warning("Invalid due date components %r", raw)
        return None


def parse_due_time(raw: Any) -> time | None:
    """Parse 'HH:MM' (seconds ignored). Invalid input -> None (midnight is used)."""
    if isinstance(raw, time):
        return raw
    if not raw or ":" not in str(raw):
        return None
    hour_s, minute_s = str(raw).strip().split(":")[:2]
    try:
        hour, minute = int(hour_s), int(minute_s)
        return time(hour, minute)
    except ValueError:
        logger.warning("Invalid due time %r, keeping midnight", raw)
        return None


@dataclass(slots=True, frozen=True)
class Task:
    """Read-only task snapshot supplied by the task collaborator."""

    id: str
    title: str
    due_date: date | None
    due_time: time | None = None
    completed: bool = False
    notify_enabled: bool = True

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        notify = raw.get("notifyEnabled", raw.get("notify_enabled"))
        return cls(
            id=str(raw.get("id", "")),
            title=str(raw.get("title", "") or ""),
            due_date=parse_due_date(raw.get("dueDate", raw.get("due_date"))),
            due_time=parse_due_time(raw.get("dueTime", raw.get("due_time"))),
            completed=parse_flag(raw.get("completed"), False),
            # Missing field means "notify" (older records predate the flag).
            notify_enabled=parse_flag(notify, True),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "dueTime": self.due_time.strftime("%H:%M") if self.due_time else None,
            "completed": self.completed,
            "notifyEnabled": self.notify_enabled,
        }


@dataclass(slots=True, frozen=True)
class LeadTime:
    value: float = 30
    unit: LeadTimeUnit = LeadTimeUnit.MINUTES


@dataclass(slots=True, frozen=True)
class NotificationConfig:
    enabled: bool = True
    sound_enabled: bool = True
    lead_time: LeadTime = field(default_factory=LeadTime)

    @classmethod
    def from_dict(cls, raw: Any) -> NotificationConfig:
        """
        Build a config from the settings collaborator's JSON document.

        Corrupt pieces fall back individually to the documented defaults.
        """
        if not isinstance(raw, dict):
            return cls()

        lead_raw = raw.get("leadTime", raw.get("lead_time"))
        lead_raw = lead_raw if isinstance(lead_raw, dict) else {}

        value: float
        try:
            value = float(lead_raw.get("value", 30))
        except (TypeError, ValueError):
            value = 30
        if not value > 0:
            logger.warning("Invalid lead time value %r, using 30", lead_raw.get("value"))
            value = 30

        return cls(
            enabled=parse_flag(raw.get("enabled"), True),
            sound_enabled=parse_flag(raw.get("soundEnabled", raw.get("sound_enabled")), True),
            lead_time=LeadTime(value=value, unit=LeadTimeUnit.parse(lead_raw.get("unit"))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "soundEnabled": self.sound_enabled,
            "leadTime": {"value": self.lead_time.value, "unit": self.lead_time.unit.value},
        }


@dataclass(slots=True, frozen=True)
class DeviceInfo:
    """The subset of device facts attached to every ErrorRecord."""

    is_ios: bool = False
    is_android: bool = False
    is_safari: bool = False
    is_pwa: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "isIOS": self.is_ios,
            "isAndroid": self.is_android,
            "isSafari": self.is_safari,
            "isPWA": self.is_pwa,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> DeviceInfo | None:
        if not isinstance(raw, dict):
            return None
        return cls(
            is_ios=raw.get("isIOS") is True,
            is_android=raw.get("isAndroid") is True,
            is_safari=raw.get("isSafari") is True,
            is_pwa=raw.get("isPWA") is True,
        )


@dataclass(slots=True, frozen=True)
class ErrorRecord:
    type: ErrorKind
    message: str
    timestamp: int
    device_info: DeviceInfo | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": self.type.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.device_info is not None:
            out["deviceInfo"] = self.device_info.to_dict()
        if self.details:
            out["details"] = self.details
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ErrorRecord:
        details = raw.get("details")
        return cls(
            type=ErrorKind.parse(raw.get("type")),
            message=str(raw.get("message", "")),
            timestamp=int(raw.get("timestamp", 0)),
            device_info=DeviceInfo.from_dict(raw.get("deviceInfo")),
            details=details if isinstance(details, dict) else {},
        )
