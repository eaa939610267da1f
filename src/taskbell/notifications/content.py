# src/taskbell/notifications/content.py

"""
What a notification looks like.

Shared by the foreground scheduler and the background worker: title/body formatting,
tags, routing data and the fixed rendering discipline (require interaction, vibration,
view/close actions).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any

from ..core.models import Task

DEFAULT_ICON = "/icons/icon-192x192.png"
DEFAULT_BADGE = "/icons/badge-72x72.png"
VIBRATE_PATTERN = (100, 50, 100)

GENERIC_TITLE = "New notification"
GENERIC_BODY = "You have a pending notification"
DEFAULT_TAG = "task"

TEST_TITLE = "Test notification"


@dataclass(slots=True, frozen=True)
class NotificationAction:
    action: str
    title: str


DEFAULT_ACTIONS = (
    NotificationAction(action="view", title="View details"),
    NotificationAction(action="close", title="Close"),
)


@dataclass(slots=True, frozen=True)
class NotificationOptions:
    body: str
    tag: str
    data: dict[str, Any] = field(default_factory=dict)
    icon: str = DEFAULT_ICON
    badge: str = DEFAULT_BADGE
    require_interaction: bool = True
    vibrate: tuple[int, ...] = VIBRATE_PATTERN
    actions: tuple[NotificationAction, ...] = DEFAULT_ACTIONS

    def to_dict(self) -> dict[str, Any]:
        return {
            "body": self.body,
            "icon": self.icon,
            "badge": self.badge,
            "tag": self.tag,
            "data": dict(self.data),
            "requireInteraction": self.require_interaction,
            "vibrate": list(self.vibrate),
            "actions": [{"action": a.action, "title": a.title} for a in self.actions],
        }


@dataclass(slots=True, frozen=True)
class NotificationContent:
    title: str
    options: NotificationOptions

    @property
    def tag(self) -> str:
        return self.options.tag

    @property
    def data(self) -> dict[str, Any]:
        return self.options.data

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "options": self.options.to_dict()}


def format_duration(ms: float) -> str:
    """'1h and 5min', '2h', '30 minutes'."""
    hours = int(ms // 3_600_000)
    minutes = int((ms % 3_600_000) // 60_000)
    if hours > 0:
        return f"{hours}h" + (f" and {minutes}min" if minutes > 0 else "")
    return f"{minutes} minutes"


def task_tag(task_id: str | None) -> str:
    return f"task-{task_id}" if task_id else DEFAULT_TAG


def build_task_notification(task: Task, now: datetime, time_until_ms: float) -> NotificationContent:
    due_at = now + timedelta(milliseconds=time_until_ms)
    body = f"Task scheduled for {due_at.strftime('%H:%M')} (in {format_duration(time_until_ms)})"
    return NotificationContent(
        title=f"Reminder: {task.title}",
        options=NotificationOptions(
            body=body,
            # One tag per task: a repeated alert replaces the previous one instead of stacking.
            tag=task_tag(task.id),
            data={"taskId": task.id},
        ),
    )


def parse_push_payload(raw: bytes | str | dict[str, Any] | None) -> dict[str, Any] | None:
    """Decode a push body. Anything that is not a JSON object -> None."""
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        payload = json.loads(text)
    except (UnicodeDecodeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def build_push_notification(payload: dict[str, Any] | None) -> NotificationContent:
    """
    Structured payloads ({"notification": {...}, "data": {...}}) render their own
    title/body; everything else renders the generic fallback. Exactly one result.
    """
    payload = payload or {}
    data_raw = payload.get("data")
    data: dict[str, Any] = dict(data_raw) if isinstance(data_raw, dict) else {}
    task_id = data.get("taskId")
    tag = task_tag(str(task_id)) if task_id else DEFAULT_TAG

    notification = payload.get("notification")
    if isinstance(notification, dict):
        title = str(notification.get("title") or GENERIC_TITLE)
        body = str(notification.get("body") or GENERIC_BODY)
        return NotificationContent(title=title, options=NotificationOptions(body=body, tag=tag, data=data))

    return NotificationContent(
        title=GENERIC_TITLE,
        options=NotificationOptions(body=GENERIC_BODY, tag=tag, data=data),
    )


def build_test_notification(now: datetime, *, title: str | None = None, body: str | None = None) -> NotificationContent:
    return NotificationContent(
        title=title or TEST_TITLE,
        options=NotificationOptions(
            body=body or f"This is a test notification ({now.strftime('%H:%M:%S')})",
            tag="test",
            data={"source": "test-notification"},
        ),
    )


def with_data(content: NotificationContent, **extra: Any) -> NotificationContent:
    return replace(content, options=replace(content.options, data={**content.options.data, **extra}))
