import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from rbac_admin.api.v1.api import api_router
from rbac_admin.audit.handle import AuditQueueHandle
from rbac_admin.audit.middleware import AuditMiddleware
from rbac_admin.audit.store import SqlAuditStore
from rbac_admin.core.config import settings
from rbac_admin.core.logging import configure_logging
from rbac_admin.core.request_log import RequestLogMiddleware
from rbac_admin.core.seed import ensure_seed_data
from rbac_admin.db.session import SessionLocal

configure_logging(settings.LOG_LEVEL, sql_echo=settings.sql_logging_enabled)
logger = logging.getLogger(__name__)

audit_queue = AuditQueueHandle()
audit_store = SqlAuditStore(SessionLocal)


def seed_dev_data():
    db = SessionLocal()
    try:
        ensure_seed_data(db)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    seed_dev_data()
    if settings.AUDIT_ENABLED:
        audit_queue.start(audit_store, settings.AUDIT_QUEUE_CAPACITY)
    else:
        logger.warning("audit queue disabled; events are written inline")
    try:
        yield
    finally:
        audit_queue.stop()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)
app.state.audit_queue = audit_queue

app.add_middleware(
    AuditMiddleware,
    queue=audit_queue,
    store=audit_store,
    exempt_paths=settings.AUDIT_EXEMPT_PATHS,
    max_body_bytes=settings.AUDIT_MAX_BODY_BYTES,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLogMiddleware, enabled=settings.request_logging_enabled)

app.include_router(api_router, prefix=settings.API_V1_STR)

os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get(f"{settings.API_V1_STR}/audit/health")
def audit_health():
    queue = audit_queue.queue
    return {
        "status": "ok" if audit_queue.is_running else "degraded",
        "running": audit_queue.is_running,
        "pending": queue.pending if queue is not None else 0,
    }
