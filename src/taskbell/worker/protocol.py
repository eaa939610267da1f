# src/taskbell/worker/protocol.py

"""
Message protocol between the application and the background worker.

Messages are plain JSON objects with a "type" field. They are serialised at the channel
boundary (see encode/decode) so the two sides never share live objects.
"""

from __future__ import annotations

import json
import time
from enum import StrEnum
from typing import Any

from ..core.ports import JsonMessage


class MessageType(StrEnum):
    # liveness
    PING = "PING"
    PONG = "PONG"

    # app -> worker
    APP_FOREGROUND = "APP_FOREGROUND"
    APP_BACKGROUND = "APP_BACKGROUND"
    REGISTER_PUSH = "REGISTER_PUSH"
    SYNC_TASKS = "SYNC_TASKS"
    CHECK_PENDING_TASKS = "CHECK_PENDING_TASKS"
    TEST_NOTIFICATION = "TEST_NOTIFICATION"

    # worker -> app
    ERROR_REPORT = "ERROR_REPORT"
    NOTIFICATION_CLICKED = "NOTIFICATION_CLICKED"
    SYNC_COMPLETE = "SYNC_COMPLETE"


def now_ms() -> int:
    return int(time.time() * 1000)


def make_message(type_: MessageType | str, **fields: Any) -> JsonMessage:
    return {"type": str(type_), **fields}


def pong() -> JsonMessage:
    return make_message(MessageType.PONG, status="active", timestamp=now_ms())


def encode(message: JsonMessage) -> str:
    return json.dumps(message, ensure_ascii=False, default=str)


def decode(raw: str | bytes) -> JsonMessage | None:
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        return None
    return message
