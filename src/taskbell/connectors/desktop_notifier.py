# src/taskbell/connectors/desktop_notifier.py

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from plyer import notification as plyer_notification

from ..errors import DeliveryError, UnsupportedPlatformError
from ..notifications.content import NotificationContent

logger = logging.getLogger(__name__)

DISPLAY_TIMEOUT_SECONDS = 10

Echo = Callable[[NotificationContent], None]


class DesktopNotifier:
    """
    NotificationSink rendering through the OS notification center (plyer).

    plyer has no notion of tags or actions: the tag is tracked locally so that a repeated
    alert for the same task is logged as a replacement, and actions are only reachable
    through the console (/click).
    """

    def __init__(self, app_name: str = "taskbell", *, echo: Optional[Echo] = None) -> None:
        self._app_name = app_name
        self._echo = echo
        self._visible: dict[str, NotificationContent] = {}

    @property
    def visible(self) -> dict[str, NotificationContent]:
        return dict(self._visible)

    async def show(self, content: NotificationContent) -> None:
        if content.tag in self._visible:
            logger.debug("Replacing notification with tag %s", content.tag)

        try:
            await asyncio.to_thread(
                plyer_notification.notify,
                title=content.title,
                message=content.options.body,
                app_name=self._app_name,
                timeout=DISPLAY_TIMEOUT_SECONDS,
            )
        except NotImplementedError as e:
            raise UnsupportedPlatformError("no desktop notification backend on this host") from e
        except Exception as e:
            raise DeliveryError(f"desktop notification failed: {e!r}") from e

        self._visible[content.tag] = content
        if self._echo is not None:
            self._echo(content)

    async def close(self, tag: str) -> None:
        # The OS dismisses the toast itself; forget it locally.
        self._visible.pop(tag, None)
