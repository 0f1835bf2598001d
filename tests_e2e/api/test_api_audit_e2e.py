from __future__ import annotations

import os
import time
import uuid

import httpx
import pytest


pytestmark = pytest.mark.e2e


def _require_env(name: str) -> str:
    value = (os.getenv(name) or "").strip()
    if not value:
        pytest.skip(f"environment variable not set: {name}")
    return value


def _api_base_url() -> str:
    return (os.getenv("RBAC_ADMIN_E2E_API_BASE_URL") or "http://127.0.0.1:8000").rstrip("/")


def _auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="session")
def credentials() -> tuple[str, str]:
    return _require_env("RBAC_ADMIN_EMAIL"), _require_env("RBAC_ADMIN_PASSWORD")


@pytest.fixture(scope="session")
def client() -> httpx.Client:
    with httpx.Client(base_url=_api_base_url(), timeout=30.0) as http:
        yield http


@pytest.fixture(scope="session")
def access_token(client: httpx.Client, credentials: tuple[str, str]) -> str:
    email, password = credentials
    response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    if response.status_code != 200:
        pytest.fail(
            "E2E login failed at /api/v1/auth/login "
            f"(status={response.status_code}) for RBAC_ADMIN_EMAIL='{email}'. "
            "The account needs manage_roles and view_audit_logs. "
            f"Response: {response.text}"
        )
    token = response.json().get("access_token")
    assert token, response.text
    return token


def _find_action(client: httpx.Client, headers: dict, action: str, role_name: str) -> dict | None:
    # the worker writes asynchronously; poll the newest page for a while
    deadline = time.monotonic() + 10
    while time.monotonic() < deadline:
        response = client.get("/api/v1/audit-logs", params={"limit": 100}, headers=headers)
        assert response.status_code == 200, response.text
        for row in response.json()["audit_logs"]:
            if row["action"] == action and role_name in (row["details"] or ""):
                return row
        time.sleep(0.25)
    return None


def test_e2e_audit_health(client: httpx.Client) -> None:
    response = client.get("/api/v1/audit/health")
    assert response.status_code == 200, response.text
    assert response.json()["running"] is True


def test_e2e_role_lifecycle_is_audited(client: httpx.Client, access_token: str) -> None:
    headers = _auth_headers(access_token)
    role_name = f"E2E_{uuid.uuid4().hex[:8].upper()}"

    created = client.post("/api/v1/roles", json={"name": role_name}, headers=headers)
    assert created.status_code == 201, created.text
    role_id = created.json()["id"]

    rejected = client.post("/api/v1/roles", json={"name": role_name}, headers=headers)
    assert rejected.status_code == 409, rejected.text

    deleted = client.delete(f"/api/v1/roles/{role_id}", headers=headers)
    assert deleted.status_code == 200, deleted.text

    created_row = _find_action(client, headers, "ROLE_CREATED", role_name)
    assert created_row is not None
    assert created_row["user_id"]
    assert _find_action(client, headers, "ROLE_DELETED", role_name) is not None
