"""
ASGI middleware turning successful mutating requests into audit events.

For every POST/PUT/PATCH/DELETE that ends with a 2xx status exactly one event
is produced. The action and details come from the request's ``AuditContext``
(filled by handlers), then from ``X-Audit-Action``/``X-Audit-Details``
response headers, then from a generic ``"<METHOD> <path>"`` envelope. Events
go to the shared queue; when it is stopped or full they are written inline.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Sequence
from urllib.parse import parse_qsl

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from rbac_admin.audit.context import (
    AUDIT_ACTION_HEADER,
    AUDIT_DETAILS_HEADER,
    bind_audit_context,
)
from rbac_admin.audit.events import AuditDetails, AuditEvent, OpaqueDetails, RequestSnapshot
from rbac_admin.audit.handle import AuditQueueHandle
from rbac_admin.audit.store import AuditStore, persist_event
from rbac_admin.core.http_capture import read_body, redact, replay_body

logger = logging.getLogger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _parse_header_details(raw: str) -> OpaqueDetails:
    try:
        return OpaqueDetails(json.loads(raw))
    except ValueError:
        return OpaqueDetails(raw)


class AuditMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        queue: AuditQueueHandle,
        store: AuditStore,
        exempt_paths: Sequence[str] = (),
        max_body_bytes: int = 64 * 1024,
    ) -> None:
        self.app = app
        self.queue = queue
        self.store = store
        self.exempt_paths = tuple(p.rstrip("/") for p in exempt_paths if p)
        self.max_body_bytes = max_body_bytes

    def _is_exempt(self, path: str) -> bool:
        return any(path == prefix or path.startswith(prefix + "/") for prefix in self.exempt_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope["method"].upper() not in MUTATING_METHODS
            or self._is_exempt(scope["path"])
        ):
            await self.app(scope, receive, send)
            return

        method = scope["method"].upper()
        path = scope["path"]
        client = scope.get("client")
        remote_addr = client[0] if client else None
        headers = Headers(scope=scope)
        content_type = headers.get("content-type", "")

        if "multipart/form-data" in content_type.lower():
            # file bytes never reach the audit log
            body_copy: Any = {
                "content_type": content_type,
                "content_length": headers.get("content-length"),
                "upload_type": "file",
                "note": "File content omitted from audit log",
            }
            downstream_receive = receive
        else:
            raw, pending = await read_body(receive)
            body_copy = self._body_copy(raw, content_type)
            downstream_receive = replay_body(raw, pending, receive)

        context = bind_audit_context(scope.setdefault("state", {}), method, path, remote_addr)
        captured: dict = {"status": None, "action": None, "details": None}

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
                kept = []
                for name, value in message.get("headers", []):
                    lowered = name.lower()
                    if lowered == AUDIT_ACTION_HEADER.encode("latin-1"):
                        captured["action"] = value.decode("latin-1")
                    elif lowered == AUDIT_DETAILS_HEADER.encode("latin-1"):
                        captured["details"] = value.decode("latin-1")
                    else:
                        kept.append((name, value))
                message = {**message, "headers": kept}
            await send(message)

        await self.app(scope, downstream_receive, send_wrapper)

        status = captured["status"] or 200
        if not 200 <= status < 300:
            return

        if context.actor_id:
            logger.debug("audit: detected actor id=%s for %s %s", context.actor_id, method, path)
        else:
            logger.debug("audit: no actor detected for %s %s", method, path)

        action = context.action or captured["action"] or f"{method} {path}"
        details: AuditDetails
        if context.details is not None:
            details = context.details
        elif captured["details"]:
            details = _parse_header_details(captured["details"])
        else:
            details = RequestSnapshot(
                method=method,
                path=path,
                actor_id=context.actor_id,
                remote_addr=remote_addr,
                body=body_copy,
            )

        await self.deliver(AuditEvent(action=action, details=details, actor_id=context.actor_id))

    async def deliver(self, event: AuditEvent) -> None:
        if self.queue.enqueue(event):
            return
        logger.warning(
            "audit queue unavailable or full, writing %s synchronously", event.action
        )
        await run_in_threadpool(persist_event, self.store, event)

    def _body_copy(self, raw: bytes, content_type: str) -> Any:
        if not raw:
            return None
        if len(raw) > self.max_body_bytes:
            return {
                "note": "Body omitted from audit log (too large)",
                "size": len(raw),
                "content_type": content_type or None,
            }
        if "application/x-www-form-urlencoded" in content_type.lower():
            try:
                return redact(dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True)))
            except UnicodeDecodeError:
                pass
        try:
            return redact(json.loads(raw))
        except ValueError:
            pass
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return {
                "note": "Binary body omitted from audit log",
                "size": len(raw),
                "content_type": content_type or None,
            }
