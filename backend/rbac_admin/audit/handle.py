from __future__ import annotations

import logging
import threading
from typing import Optional

from rbac_admin.audit.events import AuditEvent
from rbac_admin.audit.queue import AuditQueue
from rbac_admin.audit.store import AuditStore

logger = logging.getLogger(__name__)


class AuditQueueHandle:
    """
    Owns at most one running ``AuditQueue``.

    The application creates one handle, starts it from the lifespan and passes
    the same object to ``AuditMiddleware``. While no queue is running every
    ``enqueue`` reports ``False`` and producers write synchronously.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queue: Optional[AuditQueue] = None

    @property
    def queue(self) -> Optional[AuditQueue]:
        return self._queue

    @property
    def is_running(self) -> bool:
        return self._queue is not None

    def start(self, store: AuditStore, capacity: int) -> AuditQueue:
        with self._lock:
            if self._queue is None:
                self._queue = AuditQueue(store, capacity)
                logger.info("audit queue started (capacity=%d)", capacity)
            return self._queue

    def stop(self) -> None:
        with self._lock:
            current, self._queue = self._queue, None
        if current is None:
            return
        logger.info("audit queue stopping, draining %d pending event(s)", current.pending)
        current.shutdown()

    def enqueue(self, event: AuditEvent) -> bool:
        current = self._queue
        if current is None:
            return False
        return current.enqueue(event)
