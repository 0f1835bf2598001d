import json
import threading
import time

import pytest
from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from fakes import MemoryStore
from rbac_admin.audit.context import AuditContext, get_audit_context
from rbac_admin.audit.handle import AuditQueueHandle
from rbac_admin.audit.middleware import AuditMiddleware


def _actor(request: Request) -> None:
    user_id = request.headers.get("x-test-user")
    if user_id:
        get_audit_context(request).bind_actor(user_id)


def _build_app(handle, store, max_body_bytes=1024):
    app = FastAPI()
    app.add_middleware(
        AuditMiddleware,
        queue=handle,
        store=store,
        exempt_paths=["/auth"],
        max_body_bytes=max_body_bytes,
    )

    @app.get("/items")
    def list_items():
        return []

    @app.post("/items", dependencies=[Depends(_actor)])
    async def create_item(request: Request, audit: AuditContext = Depends(get_audit_context)):
        payload = await request.json()
        audit.record_change("ITEM_CREATED", "item", before=None, after=payload)
        return payload

    @app.post("/echo", dependencies=[Depends(_actor)])
    async def echo(request: Request):
        return {"raw": (await request.body()).decode("latin-1")}

    @app.put("/items/{item_id}")
    def reject_item(item_id: str):
        raise HTTPException(status_code=400, detail="bad item")

    @app.delete("/items/{item_id}")
    def delete_item(item_id: str):
        return JSONResponse(
            {"deleted": item_id},
            headers={
                "X-Audit-Action": "ITEM_DELETED",
                "X-Audit-Details": json.dumps({"item_id": item_id}),
            },
        )

    @app.post("/auth/login")
    def login():
        return {"ok": True}

    @app.post("/files")
    async def upload(file: UploadFile = File(...)):
        content = await file.read()
        return {"size": len(content)}

    @app.post("/boom")
    def boom():
        raise RuntimeError("handler exploded")

    return app


@pytest.fixture()
def audited():
    store = MemoryStore()
    handle = AuditQueueHandle()
    handle.start(store, 10)
    with TestClient(_build_app(handle, store)) as client:
        yield client, handle, store
    handle.stop()


def _details(row):
    return json.loads(row["details"])


def test_handler_recorded_action_is_persisted_once(audited):
    client, handle, store = audited
    response = client.post("/items", json={"name": "widget"}, headers={"x-test-user": "u-1"})
    assert response.status_code == 200
    assert response.json() == {"name": "widget"}
    handle.stop()

    assert len(store.rows) == 1
    row = store.rows[0]
    assert row["action"] == "ITEM_CREATED"
    assert row["user_id"] == "u-1"
    details = _details(row)
    assert details["item_before"] is None
    assert details["item_after"] == {"name": "widget"}
    assert details["action"]["method"] == "POST"
    assert details["action"]["path"] == "/items"
    assert details["action"]["actor_id"] == "u-1"


def test_rejected_request_is_not_audited(audited):
    client, handle, store = audited
    response = client.put("/items/1", json={})
    assert response.status_code == 400
    handle.stop()
    assert store.rows == []


def test_read_only_request_is_not_audited(audited):
    client, handle, store = audited
    assert client.get("/items").status_code == 200
    handle.stop()
    assert store.rows == []


def test_exempt_path_is_not_audited(audited):
    client, handle, store = audited
    response = client.post("/auth/login", json={"password": "secret"})
    assert response.status_code == 200
    handle.stop()
    assert store.rows == []


def test_header_channel_is_used_and_stripped(audited):
    client, handle, store = audited
    response = client.delete("/items/42")
    assert response.status_code == 200
    assert "x-audit-action" not in response.headers
    assert "x-audit-details" not in response.headers
    handle.stop()

    assert [row["action"] for row in store.rows] == ["ITEM_DELETED"]
    assert _details(store.rows[0]) == {"item_id": "42"}


def test_fallback_envelope_for_unannotated_request(audited):
    client, handle, store = audited
    response = client.post("/echo", json={"name": "x", "password": "hunter2"})
    assert response.status_code == 200
    # the app still sees the original body
    assert json.loads(response.json()["raw"]) == {"name": "x", "password": "hunter2"}
    handle.stop()

    row = store.rows[0]
    assert row["action"] == "POST /echo"
    assert row["user_id"] is None
    details = _details(row)
    assert details["user_before"] is None
    assert details["user_after"] is None
    assert details["action"]["method"] == "POST"
    assert details["action"]["actor"] is None
    assert details["body"] == {"name": "x", "password": "***"}


def test_urlencoded_body_is_redacted(audited):
    client, handle, store = audited
    response = client.post("/echo", data={"username": "bob", "password": "pw"})
    assert response.status_code == 200
    handle.stop()
    assert _details(store.rows[0])["body"] == {"username": "bob", "password": "***"}


def test_large_and_binary_bodies_are_summarised(audited):
    client, handle, store = audited
    client.post("/echo", content=b"a" * 2048, headers={"content-type": "text/plain"})
    client.post(
        "/echo", content=b"\x80\x81\x82\x83", headers={"content-type": "application/octet-stream"}
    )
    handle.stop()

    large, binary = (_details(row)["body"] for row in store.rows)
    assert large["size"] == 2048
    assert "too large" in large["note"]
    assert binary["size"] == 4
    assert "Binary" in binary["note"]


def test_multipart_upload_stores_metadata_only(audited):
    client, handle, store = audited
    secret = b"TOP-SECRET-FILE-CONTENT"
    response = client.post("/files", files={"file": ("report.txt", secret, "text/plain")})
    assert response.status_code == 200
    assert response.json() == {"size": len(secret)}
    handle.stop()

    row = store.rows[0]
    assert "TOP-SECRET" not in row["details"]
    body = _details(row)["body"]
    assert body["upload_type"] == "file"
    assert body["content_type"].startswith("multipart/form-data")
    assert "note" in body


def test_handler_exception_propagates_without_audit(audited):
    client, handle, store = audited
    with pytest.raises(RuntimeError):
        client.post("/boom", json={})
    handle.stop()
    assert store.rows == []


def test_stopped_queue_writes_inline(audited):
    client, handle, store = audited
    handle.stop()
    response = client.post("/items", json={"name": "late"})
    assert response.status_code == 200
    # no drain needed: the write happened before the response completed
    assert store.actions() == ["ITEM_CREATED"]


class WorkerGatedStore(MemoryStore):
    """Blocks only the background worker so inline writes still go through."""

    def __init__(self):
        super().__init__()
        self.gate = threading.Event()

    def insert(self, *args, **kwargs):
        if threading.current_thread().name == "audit-worker":
            self.gate.wait(timeout=5)
        super().insert(*args, **kwargs)


def test_full_queue_falls_back_to_inline_write():
    store = WorkerGatedStore()
    handle = AuditQueueHandle()
    audit_queue = handle.start(store, 1)
    try:
        with TestClient(_build_app(handle, store)) as client:
            client.post("/items", json={"name": "first"})
            deadline = time.monotonic() + 2
            while audit_queue.pending and time.monotonic() < deadline:
                time.sleep(0.01)
            client.post("/items", json={"name": "second"})
            assert audit_queue.pending == 1

            response = client.post("/items", json={"name": "third"})
            assert response.status_code == 200
            # worker is still blocked, so this row came from the inline path
            assert len(store.rows) == 1
            assert json.loads(store.rows[0]["details"])["item_after"] == {"name": "third"}
    finally:
        store.gate.set()
        handle.stop()

    assert store.actions() == ["ITEM_CREATED"] * 3
