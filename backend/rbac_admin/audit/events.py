"""
Audit event model.

An ``AuditEvent`` is built once by the producer (middleware or handler code)
and is never mutated afterwards. ``details`` is one of the ``AuditDetails``
variants; it is turned into JSON text only when the event is persisted, so a
payload that cannot be encoded degrades to ``SERIALIZATION_FAILED`` instead of
failing the request or the worker.
"""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel

SERIALIZATION_FAILED = '"audit:marshal_error"'


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChangeSet:
    """Before/after snapshot of one entity, plus the request context that changed it."""

    entity: str
    before: Any = None
    after: Any = None
    context: Mapping[str, Any] = field(default_factory=dict)

    def to_document(self) -> dict:
        return {
            f"{self.entity}_before": self.before,
            f"{self.entity}_after": self.after,
            "action": dict(self.context),
        }


@dataclass(frozen=True)
class RequestSnapshot:
    """Generic envelope used when the handler did not describe the change itself."""

    method: str
    path: str
    actor_id: Optional[str] = None
    remote_addr: Optional[str] = None
    body: Any = None

    def to_document(self) -> dict:
        return {
            "user_before": None,
            "user_after": None,
            "action": {
                "method": self.method,
                "path": self.path,
                "actor": self.actor_id,
                "ip": self.remote_addr,
            },
            "body": self.body,
        }


@dataclass(frozen=True)
class OpaqueDetails:
    document: Any = None

    def to_document(self) -> Any:
        return self.document


AuditDetails = Union[ChangeSet, RequestSnapshot, OpaqueDetails]


@dataclass(frozen=True)
class AuditEvent:
    action: str
    details: AuditDetails = field(default_factory=OpaqueDetails)
    actor_id: Optional[str] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    timestamp: datetime = field(default_factory=_utcnow)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def serialize_details(details: AuditDetails | None) -> str:
    """Encode ``details`` for the ``audit_log.details`` column. Never raises."""
    if details is None:
        return "null"
    try:
        return json.dumps(details.to_document(), default=_json_default, allow_nan=False)
    except (TypeError, ValueError, RecursionError, AttributeError):
        return SERIALIZATION_FAILED
