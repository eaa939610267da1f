# tests/test_push_subscription.py

from __future__ import annotations

import json

import httpx
import pytest

from taskbell.core.models import ErrorKind
from taskbell.push.subscription import PushSubscriptionClient

SUB = {"endpoint": "https://push.example/abc", "keys": {"p256dh": "k", "auth": "a"}}


class _RecordingWorker:
    def __init__(self) -> None:
        self.messages: list[dict] = []

    def post_message(self, message: dict) -> None:
        self.messages.append(message)


@pytest.mark.asyncio
async def test_register_posts_subscription_and_informs_worker(monitor) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True})

    worker = _RecordingWorker()
    client = PushSubscriptionClient(
        "https://api.example/", monitor, worker=worker, transport=httpx.MockTransport(handler)
    )

    assert await client.register(SUB) is True

    assert len(seen) == 1
    assert seen[0].method == "POST"
    assert seen[0].url == "https://api.example/api/push/register"
    assert json.loads(seen[0].content) == {"subscription": SUB}
    assert [m["type"] for m in worker.messages] == ["REGISTER_PUSH"]
    assert worker.messages[0]["subscription"] == SUB
    assert len(monitor) == 0


@pytest.mark.asyncio
async def test_unregister_uses_its_own_endpoint(monitor) -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(204)

    client = PushSubscriptionClient("https://api.example", monitor, transport=httpx.MockTransport(handler))
    assert await client.unregister(SUB) is True
    assert paths == ["/api/push/unregister"]


@pytest.mark.asyncio
async def test_http_error_is_a_subscription_failure(monitor) -> None:
    worker = _RecordingWorker()
    client = PushSubscriptionClient(
        "https://api.example",
        monitor,
        worker=worker,
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )

    assert await client.register(SUB) is False

    record = monitor.history()[0]
    assert record.type is ErrorKind.SUBSCRIPTION_FAILED
    assert record.details["status"] == 500
    assert record.message == "SubscriptionError('/api/push/register failed with HTTP 500')"
    assert worker.messages == []


@pytest.mark.asyncio
async def test_transport_error_is_a_network_error(monitor) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = PushSubscriptionClient("https://api.example", monitor, transport=httpx.MockTransport(handler))

    assert await client.register(SUB) is False
    assert monitor.history()[0].type is ErrorKind.NETWORK_ERROR
