import os
import sys
import tempfile

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

# file-backed SQLite: the audit worker thread needs its own connection
_TMP_DIR = tempfile.mkdtemp(prefix="rbac-admin-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{os.path.join(_TMP_DIR, 'test.db')}")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TMP_DIR, "uploads"))
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("SEED_ENABLED", "true")
os.environ.setdefault("AUDIT_ENABLED", "true")
os.environ.setdefault("LOG_SQL", "false")

import rbac_admin.models  # noqa: E402,F401
from rbac_admin.core import security  # noqa: E402
from rbac_admin.db.base import Base  # noqa: E402
from rbac_admin.db.session import SessionLocal, engine  # noqa: E402

# replace bcrypt with a cheap reversible scheme
security.pwd_context.hash = lambda pw: f"hashed:{pw[:72]}"
security.pwd_context.verify = lambda plain, hashed: hashed == f"hashed:{plain[:72]}"

from main import app  # noqa: E402
from rbac_admin.models.audit_log import AuditLog  # noqa: E402
from rbac_admin.models.role import Role  # noqa: E402
from rbac_admin.models.user import User  # noqa: E402

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin123"


@pytest.fixture()
def client():
    Base.metadata.create_all(bind=engine)
    with TestClient(app) as test_client:
        yield test_client
    Base.metadata.drop_all(bind=engine)


def login(client, email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD) -> str:
    response = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(client) -> dict:
    return bearer(login(client))


def create_user(email: str, password: str, roles=("VIEW",), username=None) -> str:
    db = SessionLocal()
    try:
        user = User(
            username=username or email.split("@")[0],
            email=email,
            hashed_password=security.hash_password(password),
            is_active=True,
        )
        for name in roles:
            role = db.query(Role).filter(Role.name == name).first()
            if role:
                user.roles.append(role)
        db.add(user)
        db.commit()
        return user.id
    finally:
        db.close()


def drain_audit(client) -> None:
    """Stop the audit worker so every accepted event is persisted."""
    client.app.state.audit_queue.stop()


def audit_rows(action=None):
    db = SessionLocal()
    try:
        query = db.query(AuditLog)
        if action is not None:
            query = query.filter(AuditLog.action == action)
        return query.order_by(AuditLog.timestamp.asc()).all()
    finally:
        db.close()
