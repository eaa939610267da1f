# src/taskbell/core/device.py

"""
Device / platform capabilities.

All platform sniffing lives here. A DeviceCapabilities value is computed once (at
bootstrap, or when a client reports its user agent) and then passed by reference to
the PermissionGate, the ErrorMonitor and Diagnostics.
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from enum import StrEnum

from .models import DeviceInfo

_IOS_RE = re.compile(r"iPad|iPhone|iPod")
_IOS_VERSION_RE = re.compile(r"OS (\d+)(?:_(\d+))?", re.IGNORECASE)
_MOBILE_RE = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)
_SAFARI_RE = re.compile(r"^((?!chrome|android).)*safari", re.IGNORECASE)
_WEBVIEW_RE = re.compile(r"(; wv)|Facebook|Instagram|Twitter", re.IGNORECASE)


class PlatformFamily(StrEnum):
    IOS = "ios"
    ANDROID = "android"
    OTHER_MOBILE = "other-mobile"
    DESKTOP = "desktop"


def _browser_name(ua: str) -> str:
    # Order matters: iOS wrappers and Chromium derivatives all say "Safari".
    checks = (
        (r"CriOS", "Chrome iOS"),
        (r"FxiOS", "Firefox iOS"),
        (r"EdgiOS", "Edge iOS"),
        (r"OPiOS", "Opera iOS"),
        (r"SamsungBrowser", "Samsung Browser"),
    )
    for pattern, name in checks:
        if re.search(pattern, ua, re.IGNORECASE):
            return name
    if "Chrome" in ua and "Safari" in ua and "Edg" not in ua:
        return "Chrome"
    if "Firefox" in ua:
        return "Firefox"
    if "Edg" in ua:
        return "Edge"
    if "Safari" in ua and "Chrome" not in ua:
        return "Safari"
    if "Opera" in ua or "OPR" in ua:
        return "Opera"
    return "unknown"


@dataclass(slots=True, frozen=True)
class DeviceCapabilities:
    platform: PlatformFamily
    browser: str
    is_safari: bool
    is_standalone: bool
    is_webview: bool
    ios_version: tuple[int, int] | None

    worker_supported: bool
    push_supported: bool
    notification_supported: bool
    persistent_storage_supported: bool

    user_agent: str = ""

    @property
    def is_ios(self) -> bool:
        return self.platform is PlatformFamily.IOS

    @property
    def is_android(self) -> bool:
        return self.platform is PlatformFamily.ANDROID

    @property
    def is_mobile(self) -> bool:
        return self.platform in (PlatformFamily.IOS, PlatformFamily.ANDROID, PlatformFamily.OTHER_MOBILE)

    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            is_ios=self.is_ios,
            is_android=self.is_android,
            is_safari=self.is_safari,
            is_pwa=self.is_standalone,
        )

    def features(self) -> dict[str, bool]:
        return {
            "worker": self.worker_supported,
            "push": self.push_supported,
            "notification": self.notification_supported,
            "persistentStorage": self.persistent_storage_supported,
            "isIOS": self.is_ios,
            "isAndroid": self.is_android,
            "isPWA": self.is_standalone,
        }

    @classmethod
    def from_user_agent(
        cls,
        user_agent: str,
        *,
        standalone: bool = False,
        max_touch_points: int = 0,
        worker_supported: bool = True,
        push_supported: bool = True,
        notification_supported: bool = True,
        persistent_storage_supported: bool = True,
    ) -> DeviceCapabilities:
        """Derive capabilities from a client-reported user agent plus feature flags."""
        ua = user_agent or ""

        # iPadOS reports itself as a Mac; touch points give it away.
        is_ios = bool(_IOS_RE.search(ua)) or ("Macintosh" in ua and max_touch_points > 1)
        if is_ios:
            platform = PlatformFamily.IOS
        elif "Android" in ua:
            platform = PlatformFamily.ANDROID
        elif _MOBILE_RE.search(ua) or "Mobi" in ua:
            platform = PlatformFamily.OTHER_MOBILE
        else:
            platform = PlatformFamily.DESKTOP

        ios_version = None
        if is_ios:
            m = _IOS_VERSION_RE.search(ua)
            if m:
                ios_version = (int(m.group(1)), int(m.group(2) or 0))

        return cls(
            platform=platform,
            browser=_browser_name(ua),
            is_safari=bool(_SAFARI_RE.search(ua)),
            is_standalone=standalone,
            is_webview=bool(_WEBVIEW_RE.search(ua)),
            ios_version=ios_version,
            worker_supported=worker_supported,
            push_supported=push_supported,
            notification_supported=notification_supported,
            persistent_storage_supported=persistent_storage_supported,
            user_agent=ua,
        )

    @classmethod
    def detect_host(cls, *, notification_supported: bool, push_supported: bool = False) -> DeviceCapabilities:
        """
        Capabilities of the machine this process runs on.

        A local process can always host the worker loop and write to its data dir;
        notification support depends on the desktop backend being importable.
        """
        return cls(
            platform=PlatformFamily.DESKTOP,
            browser=f"python-{sys.platform}",
            is_safari=False,
            is_standalone=True,
            is_webview=False,
            ios_version=None,
            worker_supported=True,
            push_supported=push_supported,
            notification_supported=notification_supported,
            persistent_storage_supported=True,
            user_agent="",
        )
