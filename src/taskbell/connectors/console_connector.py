# src/taskbell/connectors/console_connector.py

from __future__ import annotations

import itertools
import logging
import sys
from datetime import datetime
from typing import Callable, Optional

from ..core.ports import JsonMessage
from ..core.state import AppState
from ..notifications.content import NotificationContent
from ..worker.protocol import decode, encode

logger = logging.getLogger(__name__)

MessageHandler = Callable[[JsonMessage], None]


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


def print_notification(content: NotificationContent) -> None:
    actions = " | ".join(f"{a.action}: {a.title}" for a in content.options.actions)
    _print_ts(f"[NOTIFY] {content.title}\n    {content.options.body}\n    tag={content.tag} ({actions})")


class ConsoleAdvisor:
    """Advisories printed as timestamped console lines."""

    def info(self, text: str) -> None:
        _print_ts(f"[info] {text}")

    def success(self, text: str) -> None:
        _print_ts(f"[ok] {text}")

    def warning(self, text: str) -> None:
        _print_ts(f"[warning] {text}")

    def error(self, text: str) -> None:
        _print_ts(f"[error] {text}")


class ConsoleNotifier:
    """NotificationSink for hosts without desktop notifications: prints to the console."""

    def __init__(self) -> None:
        self._visible: dict[str, NotificationContent] = {}

    @property
    def visible(self) -> dict[str, NotificationContent]:
        return dict(self._visible)

    async def show(self, content: NotificationContent) -> None:
        self._visible[content.tag] = content
        print_notification(content)

    async def close(self, tag: str) -> None:
        self._visible.pop(tag, None)


class ConsoleWindow:
    """The console session, as seen by the background worker."""

    def __init__(self, client_id: str, on_message: Optional[MessageHandler] = None) -> None:
        self.client_id = client_id
        self.url = "/"
        self.focused = False
        self.on_message = on_message

    async def navigate(self, url: str) -> None:
        self.url = url
        _print_ts(f"[open] {url}")

    async def focus(self) -> None:
        self.focused = True

    def post_message(self, message: JsonMessage) -> None:
        if self.on_message is None:
            return
        # Same discipline as the app -> worker direction: only JSON crosses.
        decoded = decode(encode(message))
        if decoded is not None:
            self.on_message(decoded)


class ConsoleClients:
    """ClientRegistry over console windows. The REPL itself is the first window."""

    def __init__(self, on_message: Optional[MessageHandler] = None, *, with_console: bool = True) -> None:
        self._on_message = on_message
        self._ids = itertools.count(1)
        self._windows: list[ConsoleWindow] = []
        self.claimed = False
        if with_console:
            self._windows.append(self._new_window())

    def _new_window(self) -> ConsoleWindow:
        return ConsoleWindow(f"console-{next(self._ids)}", self._on_message)

    def set_message_handler(self, handler: MessageHandler) -> None:
        self._on_message = handler
        for w in self._windows:
            w.on_message = handler

    def match_all(self) -> list[ConsoleWindow]:
        return list(self._windows)

    async def open_window(self, url: str) -> ConsoleWindow:
        window = self._new_window()
        self._windows.append(window)
        await window.navigate(url)
        return window

    async def claim(self) -> None:
        self.claimed = True


def run_console_loop(state: AppState) -> None:
    from ..cli.commands import registry as command_registry

    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Task reminders are running. Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (prompts, network calls).
        _print_ts(text)

    while True:
        try:
            user_input = input(">>> ").strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            with state.lock:
                response = command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Commands start with '/'. Use /help to list available commands."
        _print_ts(response)

    logger.info("Console connector finished.")
