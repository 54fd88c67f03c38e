from fastapi.testclient import TestClient

from amplygigs.main import app

client = TestClient(app)


def test_root():
    res = client.get("/")
    assert res.json() == {"success": True, "message": "Welcome to AmplyGigs API"}


def test_liveness():
    res = client.get("/healthz/live")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["uptime_s"] >= 0


def test_readiness():
    res = client.get("/healthz/ready")
    assert res.status_code == 200
    assert res.json()["success"] is True
    assert res.headers["Cache-Control"] == "no-store"


def test_unknown_route_uses_error_envelope():
    res = client.get("/api/v1/does-not-exist")
    assert res.status_code == 404
    assert res.json() == {"success": False, "error": "Not Found", "detail": "Not Found"}
