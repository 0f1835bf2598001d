"""Helpers shared by the ASGI middlewares that look at request bodies."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, Optional, Tuple

from starlette.types import Message, Receive

SENSITIVE_KEYS = frozenset(
    {"password", "hashed_password", "password_hash", "token", "access_token", "refresh_token"}
)
SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "x-api-key", "x-auth-token"})
REDACTED = "***"


def redact(value: Any) -> Any:
    """Copy of ``value`` with credential-like keys replaced by ``REDACTED``."""
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact(item) for item in value]
    return value


def mask_headers(headers: Iterable[Tuple[str, str]]) -> dict:
    return {
        name: REDACTED if name.lower() in SENSITIVE_HEADERS else value
        for name, value in headers
    }


async def read_body(receive: Receive) -> tuple[bytes, Optional[Message]]:
    """Drain the request body. Returns it plus any non-body message received meanwhile."""
    chunks = []
    while True:
        message = await receive()
        if message["type"] != "http.request":
            return b"".join(chunks), message
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            return b"".join(chunks), None


def replay_body(
    body: bytes, pending: Optional[Message], receive: Receive
) -> Callable[[], Awaitable[Message]]:
    delivered = False

    async def replay() -> Message:
        nonlocal delivered
        if not delivered:
            delivered = True
            return {"type": "http.request", "body": body, "more_body": False}
        if pending is not None:
            return pending
        return await receive()

    return replay
