# tests/test_commands.py

from __future__ import annotations

import json

from taskbell.cli.commands import CommandRegistry, registry
from taskbell.core.models import ErrorKind, LeadTimeUnit, PermissionState


def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b")

    assert reg.handle(state, "/a x") == "h2"
    assert reg.handle(state, "/b y", emit=lambda _: None) == "h3"
    assert called == {"h2": 1, "h3": 1}


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")


def test_help_lists_commands(state) -> None:
    text = registry.handle(state, "/help") or ""
    for name in ("/status", "/diag", "/errors", "/permission", "/ping", "/push", "/check", "/sync"):
        assert name in text


def test_errors_listing_clear_and_export(state) -> None:
    assert registry.handle(state, "/errors") == "No notification errors recorded."

    state.monitor.record(ErrorKind.NETWORK_ERROR, "offline")
    state.monitor.record(ErrorKind.SUBSCRIPTION_FAILED, "HTTP 410")

    listing = registry.handle(state, "/errors 1") or ""
    assert "[subscription_failed] HTTP 410" in listing
    assert "offline" not in listing

    exported = registry.handle(state, "/errors export") or ""
    files = list(state.settings.export_dir.glob("notification-errors-*.json"))
    assert len(files) == 1 and str(files[0]) in exported
    assert len(json.loads(files[0].read_text("utf-8"))) == 2

    assert registry.handle(state, "/errors clear") == "Error history cleared."
    assert len(state.monitor) == 0
    assert registry.handle(state, "/errors nope") == "Usage: /errors [n|clear|export]"


def test_config_command_updates_settings_file(state) -> None:
    assert "Saved." in (registry.handle(state, "/config lead 2 hours") or "")
    cfg = state.config_store.load()
    assert cfg.lead_time.value == 2
    assert cfg.lead_time.unit is LeadTimeUnit.HOURS

    registry.handle(state, "/config sound off")
    registry.handle(state, "/config off")
    cfg = state.config_store.load()
    assert cfg.sound_enabled is False
    assert cfg.enabled is False

    assert registry.handle(state, "/config lead -1") == "Lead time must be positive."


def test_permission_deny_and_reset(state) -> None:
    assert registry.handle(state, "/permission deny") == "Permission is now denied."
    assert state.gate.state is PermissionState.DENIED

    assert registry.handle(state, "/permission reset") == "Permission is now default."


def test_worker_commands_without_worker(state) -> None:
    for line in ("/ping", "/push {}", "/sync", "/click task-1"):
        assert registry.handle(state, line) == "Worker is not running."


def test_status_without_loops(state) -> None:
    text = registry.handle(state, "/status") or ""
    assert "Scheduler: stopped" in text
    assert "Worker: disabled" in text
    assert "Permission: default" in text
