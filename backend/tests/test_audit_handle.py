from fakes import MemoryStore
from rbac_admin.audit.events import AuditEvent
from rbac_admin.audit.handle import AuditQueueHandle


def test_enqueue_when_stopped_returns_false():
    handle = AuditQueueHandle()
    assert handle.is_running is False
    assert handle.enqueue(AuditEvent(action="X")) is False


def test_start_is_idempotent():
    handle = AuditQueueHandle()
    store = MemoryStore()
    first = handle.start(store, 5)
    second = handle.start(MemoryStore(), 50)
    try:
        assert first is second
        assert second.capacity == 5
        assert handle.queue is first
    finally:
        handle.stop()


def test_stop_drains_and_allows_restart():
    handle = AuditQueueHandle()
    store = MemoryStore()
    handle.start(store, 5)
    assert handle.enqueue(AuditEvent(action="one")) is True
    handle.stop()

    assert handle.is_running is False
    assert store.actions() == ["one"]
    assert handle.enqueue(AuditEvent(action="dropped")) is False

    restarted = handle.start(store, 5)
    assert restarted.is_alive()
    handle.enqueue(AuditEvent(action="two"))
    handle.stop()
    assert store.actions() == ["one", "two"]


def test_stop_when_idle_is_noop():
    handle = AuditQueueHandle()
    handle.stop()
    handle.stop()
    assert handle.is_running is False
