# src/taskbell/notifications/matcher.py

"""
Due-task matching.

Pure and deterministic: no clock reads, no I/O, no dedup. The same function is used by
the foreground scheduler and by the background worker's pending-task check, so the two
paths cannot drift apart.

A task is due when the time left until its due instant is within a tolerance window of
the configured lead time. The window is narrow enough that a task matches on one or two
consecutive polls only; the DedupTracker suppresses the second one.
"""

from __future__ import annotations

from datetime import datetime, time
from typing import Iterable

from ..core.models import LeadTimeUnit, NotificationConfig, Task

MINUTE_MS = 60_000
HOUR_MS = 3_600_000
MAX_TOLERANCE_MS = 30_000
TOLERANCE_RATIO = 0.1


def due_instant(task: Task) -> datetime | None:
    """
    Due date + optional time of day, as a naive local datetime.

    Built from calendar fields directly so no timezone conversion can shift the day.
    """
    if task.due_date is None:
        return None
    return datetime.combine(task.due_date, task.due_time or time(0, 0))


def lead_time_ms(config: NotificationConfig) -> float:
    lead = config.lead_time
    unit_ms = HOUR_MS if lead.unit is LeadTimeUnit.HOURS else MINUTE_MS
    return lead.value * unit_ms


def tolerance_ms(lead_ms: float) -> float:
    """Absolute slack around the ideal crossing; narrower for short lead times."""
    return min(MAX_TOLERANCE_MS, lead_ms * TOLERANCE_RATIO)


def time_until_ms(now: datetime, instant: datetime) -> float:
    return (instant - now).total_seconds() * 1000.0


def is_eligible(task: Task) -> bool:
    return not task.completed and task.notify_enabled is not False and task.due_date is not None


def is_due(now: datetime, task: Task, config: NotificationConfig) -> bool:
    if not is_eligible(task):
        return False
    instant = due_instant(task)
    if instant is None:
        return False

    delta = time_until_ms(now, instant)
    if delta <= 0:
        return False

    lead = lead_time_ms(config)
    return abs(delta - lead) <= tolerance_ms(lead)


def evaluate(now: datetime, tasks: Iterable[Task], config: NotificationConfig) -> list[Task]:
    """Return the tasks due for an alert at `now`, in the order they were supplied."""
    return [task for task in tasks if is_due(now, task, config)]
