# src/taskbell/cli/commands.py

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any, cast

from ..core.models import LeadTime, LeadTimeUnit, PermissionState
from ..core.state import AppState
from ..diagnostics.checks import format_report, run_diagnostics
from ..notifications.content import build_test_notification
from ..worker.protocol import MessageType, make_message, now_ms
from .bootstrap import sync_worker

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

WORKER_CALL_TIMEOUT = 10.0


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /diag, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        head, _, rest = line[1:].partition(" ")
        if not head:
            return "Empty command. Use /help to list available commands."

        name = head.lower()
        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        # /push takes raw JSON: keep the argument string intact.
        args = [rest.strip()] if name == "push" and rest.strip() else rest.split()

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    st = state.scheduler.status()
    cfg = state.config_store.load()
    last = st.last_tick_at.strftime("%H:%M:%S") if st.last_tick_at else "never"
    worker = "disabled"
    if state.worker is not None:
        reg = state.worker.registration()
        worker = f"{reg.lifecycle} (registered={reg.registered}, controlling={reg.controlling})"
    lead = cfg.lead_time
    return (
        "Status:\n"
        f"  Scheduler: {'running' if st.running else 'stopped'} every {st.interval_seconds:.0f}s, "
        f"{st.ticks} tick(s), last at {last}\n"
        f"  Reminders sent: {st.notified_total}\n"
        f"  Notifications: {'ON' if cfg.enabled else 'OFF'}, sound {'ON' if cfg.sound_enabled else 'OFF'}, "
        f"lead time {lead.value:g} {lead.unit.value}\n"
        f"  Permission: {state.gate.state.value}\n"
        f"  Worker: {worker}\n"
        f"  Connection: {st.connection.value}\n"
        f"  Recorded errors: {len(state.monitor)}"
    )


def cmd_diag(state: AppState, args: list[str]) -> str:
    report = state.run(
        run_diagnostics(
            state.device,
            worker=state.worker,
            permission=state.gate,
            storage=state.storage,
        )
    )
    return "Diagnostics:\n" + format_report(report)


def cmd_errors(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /errors          -> last 10 errors
    /errors <n>      -> last n errors
    /errors clear    -> clear history
    /errors export   -> write a JSON export
    """
    sub = args[0].lower() if args else ""

    if sub == "clear":
        state.monitor.clear()
        return "Error history cleared."

    if sub == "export":
        path = state.monitor.export(state.settings.export_dir)
        return f"Exported {len(state.monitor)} error record(s) to {path}"

    limit = 10
    if sub:
        try:
            limit = int(sub)
        except ValueError:
            return "Usage: /errors [n|clear|export]"

    records = state.monitor.history(limit)
    if not records:
        return "No notification errors recorded."
    lines = [f"Last {len(records)} of {len(state.monitor)} error(s):"]
    for r in records:
        lines.append(f"  {_fmt_ts(r.timestamp)} [{r.type.value}] {r.message}")
    return "\n".join(lines)


def cmd_permission(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /permission          -> request permission (prompts once per session)
    /permission reset    -> forget the stored decision (like resetting site settings)
    /permission deny     -> block notifications
    """
    sub = args[0].lower() if args else ""

    if sub in ("reset", "deny", "block"):
        target = PermissionState.DEFAULT if sub == "reset" else PermissionState.DENIED
        state.permission_platform.set(target)
        current = state.gate.refresh()
        sync_worker(state)
        return f"Permission is now {current.value}."

    if sub and sub != "request":
        return "Usage: /permission [request|reset|deny]"

    # The prompt waits for the user: no timeout.
    granted = state.run(state.gate.request_permission(), timeout=None)
    sync_worker(state)
    return f"Permission: {state.gate.state.value} ({'granted' if granted else 'not granted'})."


def cmd_test(state: AppState, args: list[str]) -> str:
    if not state.gate.granted:
        return f"Cannot show a test notification: permission is {state.gate.state.value}. Use /permission."

    if state.worker is not None:
        state.worker.post_message(make_message(MessageType.TEST_NOTIFICATION, timestamp=now_ms()))
        return "Test notification sent through the worker."

    async def _show() -> None:
        state.gate.require_granted()
        await state.sink.show(build_test_notification(datetime.now()))

    state.run(_show())
    return "Test notification shown."


def cmd_ping(state: AppState, args: list[str]) -> str:
    if state.worker is None:
        return "Worker is not running."
    timeout = state.settings.worker_ping_timeout_seconds
    if state.worker.ping(timeout=timeout):
        return "PONG: worker is active."
    return f"No answer from the worker within {timeout:.1f}s."


def cmd_push(state: AppState, args: list[str]) -> str:
    """/push <json> -> deliver a push payload to the worker, as the push service would."""
    if state.worker is None:
        return "Worker is not running."
    raw = args[0] if args else ""
    shown = state.worker.dispatch_push(raw or None).result(timeout=WORKER_CALL_TIMEOUT)
    return "Push rendered." if shown else "Push could not be rendered (see /errors)."


def cmd_click(state: AppState, args: list[str]) -> str:
    """/click <tag> [view|close] -> act on a visible notification."""
    if state.worker is None:
        return "Worker is not running."
    if not args:
        return "Usage: /click <tag> [view|close]"

    tag = args[0]
    action = args[1].lower() if len(args) > 1 else None

    async def _take_foreground(tag: str) -> dict[str, Any] | None:
        # The foreground sink belongs to the app loop.
        content = getattr(state.sink, "visible", {}).get(tag)
        if content is None:
            return None
        await state.sink.close(tag)
        return dict(content.data)

    notification: dict[str, Any] = {"tag": tag}
    if state.app_loop is not None:
        data = state.run(_take_foreground(tag), timeout=WORKER_CALL_TIMEOUT)
        if data is not None:
            notification["data"] = data

    intent = state.worker.dispatch_click(notification, action).result(timeout=WORKER_CALL_TIMEOUT)
    if intent.route is None:
        return f"Notification {tag} dismissed."
    return f"Opened {intent.route}"


def cmd_check(state: AppState, args: list[str]) -> str:
    notified = state.run(state.scheduler.check_now())
    if not notified:
        return "No reminders due right now."
    return "Reminded: " + ", ".join(t.title or t.id for t in notified)


def cmd_sync(state: AppState, args: list[str]) -> str:
    """/sync -> hand the current tasks + settings to the worker and let it check them."""
    if state.worker is None:
        return "Worker is not running."
    tasks = state.tasks.snapshot()
    state.worker.sync_tasks(tasks, state.config_store.load(), permission=state.gate.state).result(
        timeout=WORKER_CALL_TIMEOUT
    )
    reply = state.worker.post_message(make_message(MessageType.CHECK_PENDING_TASKS)).result(
        timeout=WORKER_CALL_TIMEOUT
    )
    notified = (reply or {}).get("notified") or []
    return f"Synced {len(tasks)} task(s) to the worker; {len(notified)} reminder(s) shown."


def cmd_config(state: AppState, args: list[str]) -> str:
    """
    /config                       -> show notification settings
    /config on|off                -> enable/disable reminders
    /config sound on|off          -> reminder sound
    /config lead <value> [unit]   -> lead time (unit: minutes|hours)
    """
    cfg = state.config_store.load()
    if not args:
        return "Notification settings:\n" + json.dumps(cfg.to_dict(), indent=2)

    sub = args[0].lower()
    if sub in ("on", "off"):
        cfg = replace(cfg, enabled=sub == "on")
    elif sub == "sound" and len(args) > 1 and args[1].lower() in ("on", "off"):
        cfg = replace(cfg, sound_enabled=args[1].lower() == "on")
    elif sub == "lead" and len(args) > 1:
        try:
            value = float(args[1])
        except ValueError:
            return "Lead time must be a number."
        if value <= 0:
            return "Lead time must be positive."
        unit = LeadTimeUnit.parse(args[2]) if len(args) > 2 else cfg.lead_time.unit
        cfg = replace(cfg, lead_time=LeadTime(value=value, unit=unit))
    else:
        return "Usage: /config [on|off] | /config sound on|off | /config lead <value> [minutes|hours]"

    state.config_store.save(cfg)
    return "Saved. " + json.dumps(cfg.to_dict())


def cmd_subscribe(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/subscribe <endpoint> | /subscribe off <endpoint>"""
    if state.push is None:
        return "Push server is not configured. Set TASKBELL_PUSH_SERVER_URL in .env."
    if not args:
        return "Usage: /subscribe <endpoint> | /subscribe off <endpoint>"

    if args[0].lower() == "off":
        if len(args) < 2:
            return "Usage: /subscribe off <endpoint>"
        ok = state.run(state.push.unregister({"endpoint": args[1]}))
        return "Unsubscribed." if ok else "Unsubscribe failed (see /errors)."

    if emit:
        emit(f"Registering push subscription for {args[0]}...")
    ok = state.run(state.push.register({"endpoint": args[0]}))
    return "Subscribed." if ok else "Subscription failed (see /errors)."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Scheduler, permission and worker status.")
registry.register("diag", cmd_diag, help_text="Run notification diagnostics.", aliases=["diagnostics"])
registry.register("errors", cmd_errors, help_text="Error history: /errors [n|clear|export].")
registry.register("permission", cmd_permission, help_text="Request notification permission: /permission [request|reset|deny].")
registry.register("test", cmd_test, help_text="Show a test notification.")
registry.register("ping", cmd_ping, help_text="Check that the background worker is alive.")
registry.register("push", cmd_push, help_text="Simulate a push delivery: /push <json>.")
registry.register("click", cmd_click, help_text="Click a notification: /click <tag> [view|close].")
registry.register("check", cmd_check, help_text="Check for due reminders now.")
registry.register("sync", cmd_sync, help_text="Sync tasks to the worker and run its pending check.")
registry.register("config", cmd_config, help_text="Notification settings: /config [on|off|sound|lead].")
registry.register("subscribe", cmd_subscribe, help_text="Push subscription: /subscribe <endpoint> | off <endpoint>.")
