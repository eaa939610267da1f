# tests/test_dedup.py

from __future__ import annotations

from taskbell.notifications.dedup import DEDUP_WINDOW_MS, DedupTracker


def test_unknown_task_may_notify() -> None:
    assert DedupTracker().should_notify("t1", 1_000.0)


def test_window_suppresses_then_rearms() -> None:
    d = DedupTracker()
    d.record("t1", 0.0)

    assert not d.should_notify("t1", 60_000.0)
    assert not d.should_notify("t1", float(DEDUP_WINDOW_MS))
    assert d.should_notify("t1", float(DEDUP_WINDOW_MS) + 1)


def test_record_overwrites_and_is_per_task() -> None:
    d = DedupTracker(window_ms=1_000)
    d.record("a", 0.0)
    d.record("a", 5_000.0)

    assert d.last_notified("a") == 5_000.0
    assert not d.should_notify("a", 5_500.0)
    assert d.should_notify("b", 5_500.0)
    assert len(d) == 1
