from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Request

from rbac_admin.audit.events import AuditDetails, ChangeSet

AUDIT_STATE_KEY = "audit"
AUDIT_ACTION_HEADER = "x-audit-action"
AUDIT_DETAILS_HEADER = "x-audit-details"


@dataclass
class AuditContext:
    """
    Request-scoped audit hints.

    ``AuditMiddleware`` binds one per request; the auth dependency fills
    ``actor_id`` and handlers call ``record``/``record_change`` before
    returning. Anything set here wins over the generic method + path fallback.
    """

    method: str
    path: str
    remote_addr: Optional[str] = None
    actor_id: Optional[str] = None
    action: Optional[str] = None
    details: Optional[AuditDetails] = None

    def bind_actor(self, actor_id: Optional[str]) -> None:
        self.actor_id = actor_id

    def record(self, action: Optional[str] = None, details: Optional[AuditDetails] = None) -> None:
        if action:
            self.action = action
        if details is not None:
            self.details = details

    def request_info(self) -> dict:
        return {
            "method": self.method,
            "path": self.path,
            "actor_id": self.actor_id,
            "ip_address": self.remote_addr,
        }

    def record_change(self, action: str, entity: str, before: Any = None, after: Any = None) -> None:
        self.record(
            action,
            ChangeSet(entity=entity, before=before, after=after, context=self.request_info()),
        )


def bind_audit_context(state: dict, method: str, path: str, remote_addr: Optional[str]) -> AuditContext:
    context = AuditContext(method=method, path=path, remote_addr=remote_addr)
    state[AUDIT_STATE_KEY] = context
    return context


def get_audit_context(request: Request) -> AuditContext:
    context = getattr(request.state, AUDIT_STATE_KEY, None)
    if context is None:
        # audit middleware not installed; hints are collected and dropped
        client = request.client.host if request.client else None
        context = AuditContext(method=request.method, path=request.url.path, remote_addr=client)
        setattr(request.state, AUDIT_STATE_KEY, context)
    return context
