# src/taskbell/errors.py

"""
Exception types and failure classification.

Every failure that reaches the ErrorMonitor is described by an ErrorKind. Our own
exceptions carry their kind; foreign exceptions are mapped by classify_exception().
"""

from __future__ import annotations

import httpx

from .core.models import ErrorKind


class TaskbellError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN


class DeliveryError(TaskbellError):
    """The platform refused or failed to render a notification."""

    kind = ErrorKind.NOTIFICATION_DELIVERY_FAILED


class WorkerError(TaskbellError):
    """Background worker registration, activation or messaging failed."""

    kind = ErrorKind.SERVICE_WORKER_ERROR


class SubscriptionError(TaskbellError):
    """The push server rejected a subscription request."""

    kind = ErrorKind.SUBSCRIPTION_FAILED


class UnsupportedPlatformError(TaskbellError):
    kind = ErrorKind.UNSUPPORTED_BROWSER


class PermissionNotGrantedError(TaskbellError, RuntimeError):
    """
    Raised when a notification is about to be displayed outside the GRANTED state.

    This is a programming error: callers must check PermissionGate.state first.
    """

    kind = ErrorKind.PERMISSION_DENIED


def classify_exception(exc: BaseException, default: ErrorKind = ErrorKind.UNKNOWN) -> ErrorKind:
    if isinstance(exc, TaskbellError):
        return exc.kind
    if isinstance(exc, PermissionError):
        return ErrorKind.PERMISSION_DENIED
    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return ErrorKind.NETWORK_ERROR
    if isinstance(exc, NotImplementedError):
        # plyer raises this when the host has no notification backend.
        return ErrorKind.DEVICE_SPECIFIC
    return default
