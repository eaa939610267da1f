# src/taskbell/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the platform (desktop backend, worker host, push server) swappable and makes
testing easier.
"""

from typing import Any, Awaitable, Protocol, Sequence

from .models import ConnectionState, NotificationConfig, PermissionState, Task

JsonMessage = dict[str, Any]
# Everything crossing the worker channel is a JSON object: {"type": "...", ...}.


class TaskSource(Protocol):
    """Task collaborator: a fresh read-only snapshot on every call."""

    def snapshot(self) -> Sequence[Task]: ...


class ConfigSource(Protocol):
    """Settings collaborator. Must never raise: corrupt data -> documented default."""

    def load(self) -> NotificationConfig: ...


class NotificationSink(Protocol):
    """
    Platform notification surface (desktop backend, test fake, ...).

    `content` is a NotificationContent; kept as Any to avoid import coupling.
    """

    def show(self, content: Any) -> Awaitable[None]: ...
    def close(self, tag: str) -> Awaitable[None]: ...


class PermissionPlatform(Protocol):
    """Where the real permission value lives, and how the user is prompted."""

    def query(self) -> PermissionState: ...
    def prompt(self) -> Awaitable[PermissionState]: ...


class Advisor(Protocol):
    """User-visible, non-blocking advisory messages (toasts in a UI, lines in a console)."""

    def info(self, text: str) -> None: ...
    def success(self, text: str) -> None: ...
    def warning(self, text: str) -> None: ...
    def error(self, text: str) -> None: ...


class SoundPort(Protocol):
    enabled: bool

    def play_beep(self) -> None: ...


class ClientWindow(Protocol):
    """An open application window, as seen from the background worker."""

    client_id: str

    def navigate(self, url: str) -> Awaitable[None]: ...
    def focus(self) -> Awaitable[None]: ...
    def post_message(self, message: JsonMessage) -> None: ...


class ClientRegistry(Protocol):
    def match_all(self) -> Sequence[ClientWindow]: ...
    def open_window(self, url: str) -> Awaitable[ClientWindow | None]: ...
    def claim(self) -> Awaitable[None]: ...


class WorkerStatusProbe(Protocol):
    """Diagnostics view of the worker host: returns a WorkerRegistration."""

    def registration(self) -> Any: ...


class StorageProbe(Protocol):
    def persisted(self) -> Awaitable[bool]: ...


class ConnectionObserver(Protocol):
    def current(self) -> ConnectionState: ...
