"""
Per-request access log for development.

Logs method, url, status, duration, request/response size, user agent and
client address for every HTTP request. Credential headers and payload keys
are masked; multipart bodies are never read.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from rbac_admin.core.http_capture import REDACTED, mask_headers, read_body, redact, replay_body

logger = logging.getLogger("rbac_admin.requests")

SENSITIVE_WORDS = ("password", "token", "secret", "key", "auth")


def _payload(raw: bytes, content_type: str, max_bytes: int) -> Any:
    if not raw:
        return None
    if "multipart/form-data" in content_type.lower():
        return "<multipart omitted>"
    if len(raw) > max_bytes:
        return f"<{len(raw)} bytes omitted>"
    try:
        return redact(json.loads(raw))
    except ValueError:
        pass
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return f"<{len(raw)} binary bytes>"
    lowered = text.lower()
    if any(word in lowered for word in SENSITIVE_WORDS):
        return REDACTED
    return text


class RequestLogMiddleware:
    def __init__(self, app: ASGIApp, enabled: bool = True, max_payload_bytes: int = 4096) -> None:
        self.app = app
        self.enabled = enabled
        self.max_payload_bytes = max_payload_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self.enabled or scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        headers = Headers(scope=scope)
        content_type = headers.get("content-type", "")

        if "multipart/form-data" in content_type.lower():
            raw = b""
            request_size = int(headers.get("content-length") or 0)
            downstream_receive = receive
        else:
            raw, pending = await read_body(receive)
            request_size = len(raw)
            downstream_receive = replay_body(raw, pending, receive)

        captured = {"status": 500, "size": 0}

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
            elif message["type"] == "http.response.body":
                captured["size"] += len(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, downstream_receive, send_wrapper)
        finally:
            url = scope["path"]
            if scope.get("query_string"):
                url = f"{url}?{scope['query_string'].decode('latin-1')}"
            client = scope.get("client")
            logger.info(
                "%s %s status=%d duration_ms=%.1f request_size=%d response_size=%d "
                "user_agent=%s remote_addr=%s headers=%s payload=%s",
                scope["method"],
                url,
                captured["status"],
                (time.perf_counter() - started) * 1000,
                request_size,
                captured["size"],
                headers.get("user-agent", "-"),
                client[0] if client else "-",
                json.dumps(mask_headers(headers.items())),
                json.dumps(_payload(raw, content_type, self.max_payload_bytes), default=str),
            )
