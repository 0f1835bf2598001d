import json

from conftest import audit_rows, bearer, create_user, drain_audit, login


def _me(client, headers) -> dict:
    response = client.get("/api/v1/auth/me", headers=headers)
    assert response.status_code == 200
    return response.json()


def test_list_users_requires_manage_users(client, admin_headers):
    create_user("view@example.com", "view123")
    view_headers = bearer(login(client, "view@example.com", "view123"))

    assert client.get("/api/v1/users", headers=view_headers).status_code == 403

    response = client.get("/api/v1/users", headers=admin_headers)
    assert response.status_code == 200
    emails = {u["email"] for u in response.json()}
    assert {"admin@example.com", "view@example.com"} <= emails

    filtered = client.get("/api/v1/users", params={"q": "view"}, headers=admin_headers)
    assert [u["email"] for u in filtered.json()] == ["view@example.com"]


def test_profile_and_self_lookup(client):
    user_id = create_user("view@example.com", "view123")
    other_id = create_user("other@example.com", "other123")
    headers = bearer(login(client, "view@example.com", "view123"))

    profile = client.get("/api/v1/users/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["id"] == user_id
    assert profile.json()["roles"] == ["VIEW"]

    assert client.get(f"/api/v1/users/{user_id}", headers=headers).status_code == 200
    assert client.get(f"/api/v1/users/{other_id}", headers=headers).status_code == 403


def test_create_user_is_audited(client, admin_headers):
    admin = _me(client, admin_headers)
    response = client.post(
        "/api/v1/users",
        json={
            "username": "maria",
            "email": "Maria@Example.com",
            "password": "secret123",
            "roles": ["view"],
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    created = response.json()
    assert created["email"] == "maria@example.com"
    assert created["roles"] == ["VIEW"]

    drain_audit(client)
    rows = audit_rows("USER_CREATED")
    assert len(rows) == 1
    assert rows[0].user_id == admin["id"]
    details = json.loads(rows[0].details)
    assert details["user_before"] is None
    assert details["user_after"]["username"] == "maria"
    assert details["action"]["method"] == "POST"
    assert "secret123" not in rows[0].details


def test_create_user_rejections_are_not_audited(client, admin_headers):
    unknown_role = client.post(
        "/api/v1/users",
        json={"username": "bob", "email": "bob@example.com", "password": "secret123", "roles": ["NOPE"]},
        headers=admin_headers,
    )
    assert unknown_role.status_code == 400

    duplicate = client.post(
        "/api/v1/users",
        json={"username": "admin", "email": "x@example.com", "password": "secret123"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 409

    drain_audit(client)
    assert audit_rows("USER_CREATED") == []
    assert [r for r in audit_rows() if r.action.startswith("POST ")] == []


def test_update_user(client, admin_headers):
    user_id = create_user("view@example.com", "view123")

    empty = client.put(f"/api/v1/users/{user_id}", json={}, headers=admin_headers)
    assert empty.status_code == 400

    response = client.put(
        f"/api/v1/users/{user_id}",
        json={"username": "viewer", "roles": ["ADMIN", "VIEW"]},
        headers=admin_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["username"] == "viewer"
    assert body["roles"] == ["ADMIN", "VIEW"]

    drain_audit(client)
    rows = audit_rows("USER_UPDATED")
    assert len(rows) == 1
    details = json.loads(rows[0].details)
    assert details["user_before"]["username"] == "view"
    assert details["user_after"]["roles"] == ["ADMIN", "VIEW"]


def test_cannot_deactivate_self(client, admin_headers):
    admin = _me(client, admin_headers)
    response = client.put(
        f"/api/v1/users/{admin['id']}", json={"is_active": False}, headers=admin_headers
    )
    assert response.status_code == 400
    assert client.delete(f"/api/v1/users/{admin['id']}", headers=admin_headers).status_code == 400


def test_delete_user_is_soft(client, admin_headers):
    user_id = create_user("gone@example.com", "gone123")

    response = client.delete(f"/api/v1/users/{user_id}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["user_id"] == user_id

    again = client.delete(f"/api/v1/users/{user_id}", headers=admin_headers)
    assert again.status_code == 404

    fetched = client.get(f"/api/v1/users/{user_id}", headers=admin_headers)
    assert fetched.status_code == 200
    assert fetched.json()["is_active"] is False

    login_response = client.post(
        "/api/v1/auth/login", json={"email": "gone@example.com", "password": "gone123"}
    )
    assert login_response.status_code == 403

    drain_audit(client)
    rows = audit_rows("USER_DELETED")
    assert len(rows) == 1
    details = json.loads(rows[0].details)
    assert details["user_before"]["is_active"] is True
    assert details["user_after"]["is_active"] is False
