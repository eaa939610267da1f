# src/taskbell/push/subscription.py

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..core.models import ErrorKind
from ..diagnostics.monitor import ErrorMonitor
from ..errors import SubscriptionError
from ..worker.protocol import MessageType, make_message, now_ms

logger = logging.getLogger(__name__)

REGISTER_PATH = "/api/push/register"
UNREGISTER_PATH = "/api/push/unregister"


def _make_timeout(total_s: float) -> httpx.Timeout:
    # connect fails fast; the push server answers small JSON bodies.
    return httpx.Timeout(total_s, connect=min(5.0, total_s))


class PushSubscriptionClient:
    """
    Registers push subscriptions with the push server.

    Failures never raise to the caller: they are classified into the ErrorMonitor
    (transport problems -> NETWORK_ERROR, rejected requests -> SUBSCRIPTION_FAILED)
    and the call returns False.
    """

    def __init__(
        self,
        base_url: str,
        monitor: ErrorMonitor,
        *,
        timeout_seconds: float = 10.0,
        worker: Any = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._monitor = monitor
        self._timeout = _make_timeout(float(timeout_seconds))
        self._worker = worker  # WorkerHost, if one is running
        self._transport = transport

    def attach_worker(self, worker: Any) -> None:
        self._worker = worker

    async def register(self, subscription: dict[str, Any]) -> bool:
        ok = await self._post(REGISTER_PATH, subscription, event="push subscription registered")
        if ok and self._worker is not None:
            try:
                self._worker.post_message(
                    make_message(MessageType.REGISTER_PUSH, subscription=subscription, timestamp=now_ms())
                )
            except Exception:
                logger.warning("Failed to inform worker about push subscription", exc_info=True)
        return ok

    async def unregister(self, subscription: dict[str, Any]) -> bool:
        return await self._post(UNREGISTER_PATH, subscription, event="push subscription removed")

    async def _post(self, path: str, subscription: dict[str, Any], *, event: str) -> bool:
        endpoint = subscription.get("endpoint") if isinstance(subscription, dict) else None
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(path, json={"subscription": subscription})
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("Push server rejected %s: HTTP %s", path, status)
            self._monitor.record_exception(
                SubscriptionError(f"{path} failed with HTTP {status}"),
                details={"endpoint": endpoint, "status": status},
            )
            return False
        except httpx.TransportError as e:
            logger.error("Push server unreachable (%s): %r", path, e)
            self._monitor.record(ErrorKind.NETWORK_ERROR, f"{path}: {e!r}", {"endpoint": endpoint})
            return False
        except Exception as e:
            logger.exception("Push subscription request failed")
            self._monitor.record_exception(
                e,
                ErrorKind.SUBSCRIPTION_FAILED,
                context=path,
                details={"endpoint": endpoint},
            )
            return False

        self._monitor.log_success(event, {"endpoint": endpoint})
        return True
