import logging

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.testclient import TestClient

from rbac_admin.core.config import Settings
from rbac_admin.core.logging import configure_logging
from rbac_admin.core.request_log import RequestLogMiddleware

LOGGER = "rbac_admin.requests"


def _build_app(enabled=True):
    app = FastAPI()
    app.add_middleware(RequestLogMiddleware, enabled=enabled)

    @app.post("/echo", status_code=201)
    async def echo(request: Request):
        return await request.json()

    @app.post("/raw")
    async def raw(request: Request):
        return {"size": len(await request.body())}

    @app.get("/ping")
    def ping():
        return {"pong": True}

    @app.post("/files")
    async def upload(file: UploadFile = File(...)):
        return {"size": len(await file.read())}

    return app


def _messages(caplog):
    return [r.getMessage() for r in caplog.records if r.name == LOGGER]


def test_request_is_logged_with_masking(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    with TestClient(_build_app()) as client:
        response = client.post(
            "/echo?verbose=1",
            json={"username": "bob", "password": "hunter2"},
            headers={"Authorization": "Bearer abc.def.ghi", "User-Agent": "pytest-agent"},
        )
    assert response.status_code == 201
    # the handler still sees the full body
    assert response.json() == {"username": "bob", "password": "hunter2"}

    (message,) = _messages(caplog)
    assert message.startswith("POST /echo?verbose=1 status=201")
    assert "user_agent=pytest-agent" in message
    assert "remote_addr=testclient" in message
    assert '"username": "bob"' in message
    assert "hunter2" not in message
    assert "abc.def.ghi" not in message
    assert "response_size=" in message


def test_plain_text_with_secrets_is_masked(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    with TestClient(_build_app()) as client:
        client.get("/ping")
        client.post(
            "/raw", content=b"api_key=123456", headers={"content-type": "text/plain"}
        )

    ping, echo = _messages(caplog)
    assert ping.startswith("GET /ping status=200")
    assert "payload=null" in ping
    assert "123456" not in echo


def test_multipart_body_is_not_logged(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    with TestClient(_build_app()) as client:
        response = client.post("/files", files={"file": ("a.txt", b"FILE-CONTENT", "text/plain")})
    assert response.json() == {"size": len("FILE-CONTENT")}

    (message,) = _messages(caplog)
    assert "FILE-CONTENT" not in message


def test_disabled_middleware_logs_nothing(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    with TestClient(_build_app(enabled=False)) as client:
        assert client.get("/ping").status_code == 200
    assert _messages(caplog) == []


def test_dev_defaults_enable_request_and_sql_logging():
    dev = Settings(ENV="dev", LOG_REQUESTS=None, LOG_SQL=None)
    assert dev.request_logging_enabled is True
    assert dev.sql_logging_enabled is True

    prod = Settings(
        ENV="prod",
        SECRET_KEY="a-real-secret",
        SEED_ENABLED=False,
        LOG_REQUESTS=None,
        LOG_SQL=None,
    )
    assert prod.request_logging_enabled is False
    assert prod.sql_logging_enabled is False

    forced = Settings(ENV="dev", LOG_SQL=False)
    assert forced.sql_logging_enabled is False


def test_sql_echo_raises_engine_logger_level():
    try:
        configure_logging("INFO", sql_echo=True)
        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
        configure_logging("INFO")
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        configure_logging("INFO")
