from fastapi.testclient import TestClient
from amplygigs.main import app

client = TestClient(app)


def test_security_headers():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Welcome to AmplyGigs API"}
    assert (
        response.headers.get("Content-Security-Policy")
        == "default-src 'self'; frame-ancestors 'none'"
    )
    assert (
        response.headers.get("Strict-Transport-Security")
        == "max-age=63072000; includeSubDomains"
    )
    assert response.headers.get("X-Frame-Options") == "DENY"
    assert response.headers.get("X-Content-Type-Options") == "nosniff"
    assert "geolocation=(self)" in response.headers.get("Permissions-Policy")


def test_security_headers_on_errors():
    response = client.get("/api/v1/wallet")
    assert response.status_code == 401
    assert response.headers.get("X-Frame-Options") == "DENY"
