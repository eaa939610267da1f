# tests/test_scheduler.py

from __future__ import annotations

import asyncio
from datetime import date, datetime, time, timedelta

import pytest

from taskbell.core.models import ConnectionState, ErrorKind, NotificationConfig, PermissionState, Task
from taskbell.notifications.permission import PermissionGate
from taskbell.notifications.scheduler import ForegroundScheduler

from .fakes import FakeConfigSource, FakeConnection, FakePermissionPlatform, FakeSink, FakeSound, FakeTaskSource

NOW = datetime(2025, 3, 14, 9, 0, 0)


class Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> None:
        self.now += timedelta(**kw)


def _due_task(task_id: str, title: str = "") -> Task:
    return Task(id=task_id, title=title or f"task {task_id}", due_date=date(2025, 3, 14), due_time=time(9, 30))


def _scheduler(
    *,
    tasks: list[Task],
    gate: PermissionGate,
    monitor,
    sink: FakeSink | None = None,
    config: NotificationConfig | None = None,
    sound: FakeSound | None = None,
    clock: Clock | None = None,
    interval: float = 30.0,
    connection=None,
) -> tuple[ForegroundScheduler, FakeSink]:
    sink = sink or FakeSink()
    sched = ForegroundScheduler(
        tasks=FakeTaskSource(tasks),
        config=FakeConfigSource(config),
        sink=sink,
        gate=gate,
        monitor=monitor,
        sound=sound,
        connection=connection,
        interval_seconds=interval,
        clock=clock or Clock(NOW),
    )
    return sched, sink


async def _wait_for(predicate, timeout: float = 1.0) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


@pytest.mark.asyncio
async def test_due_task_is_notified_once_within_dedup_window(granted_gate, monitor) -> None:
    clock = Clock(NOW)
    sound = FakeSound()
    sched, sink = _scheduler(tasks=[_due_task("1", "Dentist")], gate=granted_gate, monitor=monitor, sound=sound, clock=clock)

    notified = await sched.tick()
    assert [t.id for t in notified] == ["1"]
    assert sink.titles == ["Reminder: Dentist"]

    # next poll still inside the tolerance window: suppressed by dedup
    clock.advance(seconds=20)
    assert await sched.tick() == []
    assert len(sink.shown) == 1

    assert await _wait_for(lambda: sound.plays == 1)
    assert sched.status().notified_total == 1


@pytest.mark.asyncio
async def test_sound_skipped_when_disabled_in_config(granted_gate, monitor) -> None:
    sound = FakeSound()
    sched, sink = _scheduler(
        tasks=[_due_task("1")],
        gate=granted_gate,
        monitor=monitor,
        sound=sound,
        config=NotificationConfig(sound_enabled=False),
    )
    await sched.tick()
    await asyncio.sleep(0.05)
    assert len(sink.shown) == 1
    assert sound.plays == 0


@pytest.mark.asyncio
async def test_tick_skipped_when_notifications_disabled(granted_gate, monitor) -> None:
    sched, sink = _scheduler(
        tasks=[_due_task("1")],
        gate=granted_gate,
        monitor=monitor,
        config=NotificationConfig(enabled=False),
    )
    assert await sched.tick() == []
    assert sink.shown == []


@pytest.mark.asyncio
@pytest.mark.parametrize("perm", [PermissionState.DEFAULT, PermissionState.DENIED])
async def test_nothing_is_displayed_without_permission(perm, desktop, advisor, monitor) -> None:
    gate = PermissionGate(FakePermissionPlatform(perm), desktop, advisor, monitor=monitor)
    sched, sink = _scheduler(tasks=[_due_task("1")], gate=gate, monitor=monitor)

    assert await sched.tick() == []
    assert sink.shown == []
    assert len(monitor) == 0


@pytest.mark.asyncio
async def test_failure_of_one_task_does_not_abort_the_others(granted_gate, monitor) -> None:
    sink = FakeSink(fail_for={"task-2"})
    tasks = [_due_task("1"), _due_task("2"), _due_task("3")]
    sched, _ = _scheduler(tasks=tasks, gate=granted_gate, monitor=monitor, sink=sink)

    notified = await sched.tick()

    assert [t.id for t in notified] == ["1", "3"]
    errors = monitor.history()
    assert len(errors) == 1
    assert errors[0].type is ErrorKind.NOTIFICATION_DELIVERY_FAILED
    assert errors[0].details == {"taskId": "2"}

    # the failed task was not recorded in dedup, so the next poll retries it
    assert sched.should_notify("2", NOW.timestamp() * 1000)
    assert not sched.should_notify("1", NOW.timestamp() * 1000)


@pytest.mark.asyncio
async def test_start_twice_keeps_a_single_loop(granted_gate, monitor) -> None:
    sched, sink = _scheduler(tasks=[_due_task("1")], gate=granted_gate, monitor=monitor, interval=60.0)

    sched.start()
    sched.start()

    # first evaluation happens immediately, not after the interval
    assert await _wait_for(lambda: sched.status().ticks >= 1)
    await asyncio.sleep(0.05)
    assert sched.status().ticks == 1
    assert len(sink.shown) == 1
    assert sched.running

    sched.stop()
    await asyncio.sleep(0)
    assert not sched.running


@pytest.mark.asyncio
async def test_stop_halts_ticks_and_is_idempotent(granted_gate, monitor) -> None:
    sched, _ = _scheduler(tasks=[], gate=granted_gate, monitor=monitor, interval=0.01)

    sched.start()
    assert await _wait_for(lambda: sched.status().ticks >= 3)
    sched.stop()
    sched.stop()
    await asyncio.sleep(0)

    ticks = sched.status().ticks
    await asyncio.sleep(0.05)
    assert sched.status().ticks == ticks
    assert not sched.status().running


@pytest.mark.asyncio
async def test_check_now_and_status(granted_gate, monitor) -> None:
    sched, _ = _scheduler(
        tasks=[_due_task("1")],
        gate=granted_gate,
        monitor=monitor,
        connection=FakeConnection(ConnectionState.SLOW),
    )
    notified = await sched.check_now()
    st = sched.status()

    assert [t.id for t in notified] == ["1"]
    assert st.ticks == 1
    assert st.last_tick_at == NOW
    assert st.connection is ConnectionState.SLOW
    assert st.running is False
