def test_login_and_me(client):
    login_response = client.post(
        "/api/v1/auth/login",
        json={"email": "admin@example.com", "password": "admin123"},
    )
    assert login_response.status_code == 200
    data = login_response.json()
    assert "access_token" in data
    assert "refresh_token" in data
    assert data["token_type"] == "bearer"

    me_response = client.get(
        "/api/v1/auth/me",
        headers={"Authorization": f"Bearer {data['access_token']}"},
    )
    assert me_response.status_code == 200
    me = me_response.json()
    assert me["email"] == "admin@example.com"
    assert "ADMIN" in me["roles"]
    assert "view_audit_logs" in me["permissions"]


def test_login_with_username(client):
    response = client.post(
        "/api/v1/auth/login",
        json={"username": "admin", "password": "admin123"},
    )
    assert response.status_code == 200


def test_login_wrong_password(client):
    response = client.post(
        "/api/v1/auth/login",
        json={"email": "admin@example.com", "password": "nope"},
    )
    assert response.status_code == 401


def test_login_requires_identifier(client):
    response = client.post("/api/v1/auth/login", json={"password": "admin123"})
    assert response.status_code == 422


def test_me_requires_token(client):
    response = client.get("/api/v1/auth/me")
    assert response.status_code == 401


def test_register_then_login(client):
    response = client.post(
        "/api/v1/auth/register",
        json={"username": "newbie", "email": "newbie@example.com", "password": "secret1"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["roles"] == []
    assert body["is_active"] is True

    duplicate = client.post(
        "/api/v1/auth/register",
        json={"username": "newbie", "email": "other@example.com", "password": "secret1"},
    )
    assert duplicate.status_code == 409

    login_response = client.post(
        "/api/v1/auth/login",
        json={"email": "newbie@example.com", "password": "secret1"},
    )
    assert login_response.status_code == 200
