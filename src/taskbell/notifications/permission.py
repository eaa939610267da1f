# src/taskbell/notifications/permission.py

from __future__ import annotations

"""
Notification permission gate.

State machine: UNKNOWN -> (first query) -> DEFAULT | GRANTED | DENIED.
DEFAULT -> (one prompt per session) -> GRANTED | DENIED (or stays DEFAULT if dismissed).

The gate never shows notifications itself. Display paths call require_granted() first;
getting past it outside GRANTED is a bug in the caller.
"""

import logging
from typing import TYPE_CHECKING

from ..core.device import DeviceCapabilities
from ..core.models import ErrorKind, PermissionState
from ..core.ports import Advisor, PermissionPlatform
from ..errors import PermissionNotGrantedError

if TYPE_CHECKING:
    from ..diagnostics.monitor import ErrorMonitor

logger = logging.getLogger(__name__)


def _unsupported_advice(device: DeviceCapabilities) -> tuple[str, str]:
    """(level, text) shown when the platform cannot display notifications at all."""
    if device.is_ios:
        if device.is_standalone:
            return "warning", "Notification support on iOS can be inconsistent. Make sure the app is up to date."
        return (
            "error",
            "iOS has limited support for web notifications. Add the app to your home screen "
            "(Share -> Add to Home Screen) for a better experience.",
        )
    if device.is_android:
        return "warning", "For reliable notifications, add the app to your home screen or use Chrome."
    if device.is_mobile:
        return "error", "Your mobile device may limit notifications. Consider installing the app."
    return "error", "Notifications are not supported in this environment."


class PermissionGate:
    def __init__(
        self,
        platform: PermissionPlatform,
        device: DeviceCapabilities,
        advisor: Advisor,
        *,
        monitor: ErrorMonitor | None = None,
    ) -> None:
        self._platform = platform
        self._device = device
        self._advisor = advisor
        self._monitor = monitor

        self._state = PermissionState.UNKNOWN
        self._prompted = False

    @property
    def state(self) -> PermissionState:
        if self._state is PermissionState.UNKNOWN:
            self.refresh()
        return self._state

    @property
    def prompted_this_session(self) -> bool:
        return self._prompted

    @property
    def granted(self) -> bool:
        return self.state is PermissionState.GRANTED

    def refresh(self) -> PermissionState:
        """Re-read the platform value (the user may have changed it outside the app)."""
        self._state = self.peek()
        return self._state

    def peek(self) -> PermissionState:
        """Current platform value without touching the gate's state."""
        if not self._device.notification_supported:
            return PermissionState.DENIED
        try:
            state = self._platform.query()
        except Exception:
            logger.exception("Permission query failed")
            return PermissionState.DEFAULT
        return PermissionState.DEFAULT if state is PermissionState.UNKNOWN else state

    def require_granted(self) -> None:
        if self.state is not PermissionState.GRANTED:
            raise PermissionNotGrantedError(
                f"notification display attempted with permission={self._state.value}"
            )

    async def request_permission(self) -> bool:
        if not self._device.notification_supported:
            level, text = _unsupported_advice(self._device)
            getattr(self._advisor, level)(text)
            self._record(
                ErrorKind.UNSUPPORTED_BROWSER,
                f"notifications unsupported: {self._device.browser} on {self._device.platform.value}",
            )
            return False

        state = self.state

        if state is PermissionState.GRANTED:
            return True

        if state is PermissionState.DENIED:
            logger.warning("Notification permission was denied earlier; not prompting again")
            self._advisor.warning(
                "Notification permission is blocked. Allow notifications in your system settings."
            )
            return False

        if self._prompted:
            # Already asked during this session; a dismissed prompt is not repeated.
            return self.refresh() is PermissionState.GRANTED

        if self._device.is_mobile:
            self._advisor.info(
                "You will be asked to allow notifications. Allow them to receive task reminders."
            )

        self._prompted = True
        logger.info("Requesting notification permission...")
        try:
            result = await self._platform.prompt()
        except Exception as exc:
            logger.exception("Permission prompt failed")
            self._advisor.error("Could not request notification permission.")
            self._record(ErrorKind.PERMISSION_DENIED, f"permission prompt failed: {exc!r}")
            return False

        if result is PermissionState.UNKNOWN:
            result = PermissionState.DEFAULT
        self._state = result
        logger.info("Permission prompt result: %s", result.value)

        if result is PermissionState.GRANTED:
            self._advisor.success("Notifications enabled.")
            return True
        if result is PermissionState.DENIED:
            self._advisor.error("Notification permission denied. You will not receive task reminders.")
            self._record(ErrorKind.PERMISSION_DENIED, "user denied notification permission")
        else:
            self._advisor.warning("Notification permission is still pending. Reminders will not be shown.")
        return False

    def _record(self, kind: ErrorKind, message: str) -> None:
        if self._monitor is not None:
            self._monitor.record(kind, message)
