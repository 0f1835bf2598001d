from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from rbac_admin.audit.events import AuditEvent, serialize_details
from rbac_admin.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditStore(Protocol):
    def insert(
        self,
        event_id: str,
        actor_id: Optional[str],
        action: str,
        details: str,
        timestamp: datetime,
    ) -> None:
        ...


class SqlAuditStore:
    """Writes ``audit_log`` rows through its own short-lived session per insert."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def insert(
        self,
        event_id: str,
        actor_id: Optional[str],
        action: str,
        details: str,
        timestamp: datetime,
    ) -> None:
        db = self._session_factory()
        try:
            db.add(
                AuditLog(
                    id=event_id,
                    user_id=actor_id,
                    action=action,
                    details=details,
                    timestamp=timestamp,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def persist_event(store: AuditStore, event: AuditEvent) -> bool:
    """Best-effort write of one event. Failures are logged and reported as ``False``."""
    details = serialize_details(event.details)
    try:
        store.insert(
            str(event.id),
            event.actor_id,
            event.action,
            details,
            event.timestamp,
        )
    except Exception:
        logger.exception(
            "audit: failed to insert audit log (action=%s id=%s)", event.action, event.id
        )
        return False
    return True
