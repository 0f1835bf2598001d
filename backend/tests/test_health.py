def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200


def test_audit_health_reports_running_queue(client):
    response = client.get("/api/v1/audit/health")
    assert response.status_code == 200
    data = response.json()
    assert data["running"] is True
    assert data["status"] == "ok"
    assert data["pending"] >= 0


def test_audit_health_after_stop(client):
    client.app.state.audit_queue.stop()
    response = client.get("/api/v1/audit/health")
    assert response.status_code == 200
    data = response.json()
    assert data["running"] is False
    assert data["status"] == "degraded"
