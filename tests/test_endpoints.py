from fastapi.testclient import TestClient

from intelimed.main import app

client = TestClient(app)


def test_healthz_ok():
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_config_keys_present(monkeypatch):
    import intelimed.main as m

    monkeypatch.setattr(m, "PROJECT_ID", "proj")
    r = client.get("/config")
    assert r.status_code == 200
    data = r.json()
    for key in [
        "projectId",
        "region",
        "chatModelId",
        "riskModelId",
        "temperature",
        "maxTokens",
        "upstreamTimeoutSeconds",
        "storageBackend",
        "personas",
    ]:
        assert key in data
    assert data["projectId"] == "proj"
    assert set(data["personas"]) == {"senior", "child", "anxious", "caregiver", "general"}


def test_diagnostics_reports_storage_backend():
    r = client.get("/diagnostics")
    assert r.status_code == 200
    data = r.json()
    assert data["transport"] in ("rest", "sdk")
    assert "generationConfig" in data
    assert data["storage"]["backend"] == "memory"


def test_request_id_is_echoed():
    r = client.get("/healthz", headers={"x-request-id": "req-123"})
    assert r.headers["x-request-id"] == "req-123"


def test_validation_error_envelope():
    r = client.post("/chat", json={"message": "hi"}, headers={"x-request-id": "req-9"})
    assert r.status_code == 400
    err = r.json()["error"]
    assert err["message"] == "Invalid request data"
    assert err["code"] == 400
    assert err["requestId"] == "req-9"
    assert any("userId" in e["loc"] for e in err["errors"])


def test_malformed_json_body_is_400():
    r = client.post("/health-assessments", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Invalid request data"


def test_http_exception_envelope():
    r = client.patch("/health-goals/does-not-exist", json={"completed": True})
    assert r.status_code == 404
    assert r.json()["error"] == {"message": "Health goal not found", "code": 404, "requestId": r.headers["x-request-id"]}
