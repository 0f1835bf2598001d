"""
Bounded in-memory audit queue drained by a single background worker.

``enqueue`` never blocks: a full buffer is reported as ``False`` so the caller
can write synchronously instead. ``shutdown`` closes intake, lets the worker
persist everything already accepted, and returns once the worker has exited.
"""
from __future__ import annotations

import logging
import queue
import threading

from rbac_admin.audit.events import AuditEvent
from rbac_admin.audit.store import AuditStore, persist_event

logger = logging.getLogger(__name__)

_STOP = object()


class AuditQueue:
    def __init__(self, store: AuditStore, capacity: int):
        if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self.store = store
        self.capacity = capacity
        self._events: queue.Queue = queue.Queue(maxsize=capacity)
        self._intake_lock = threading.Lock()
        self._closed = False
        self._worker = threading.Thread(
            target=self._run,
            name="audit-worker",
            daemon=True,
        )
        self._worker.start()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._events.qsize()

    def is_alive(self) -> bool:
        return self._worker.is_alive()

    def enqueue(self, event: AuditEvent) -> bool:
        with self._intake_lock:
            if self._closed:
                return False
            try:
                self._events.put_nowait(event)
            except queue.Full:
                return False
        return True

    def shutdown(self) -> None:
        with self._intake_lock:
            if self._closed:
                already_closed = True
            else:
                already_closed = False
                self._closed = True
        if not already_closed:
            # blocks while the buffer is full; the worker keeps draining
            self._events.put(_STOP)
        self._worker.join()

    def _run(self) -> None:
        processed = 0
        while True:
            event = self._events.get()
            if event is _STOP:
                break
            try:
                persist_event(self.store, event)
            except Exception:
                logger.exception("audit worker: unexpected error for action=%s", event.action)
            processed += 1
        logger.info("audit worker stopped after %d event(s)", processed)
