from tests.conftest import client

HEALTH_PATH = "/"  # health-check route – no auth required
AUTH_PATH = "/v1/authentication"


def _preflight(path: str, origin: str, method: str = "GET", headers: str | None = None):
    """Helper to craft a CORS pre-flight OPTIONS request."""
    request_headers = {
        "Origin": origin,
        "Access-Control-Request-Method": method,
    }
    if headers:
        request_headers["Access-Control-Request-Headers"] = headers
    return client.options(path, headers=request_headers)


def test_rejects_unlisted_origin():
    """An unlisted Origin must *not* receive CORS headers."""
    resp = _preflight(HEALTH_PATH, "https://evil.example.com")
    assert "access-control-allow-origin" not in resp.headers


def test_allows_frontend_origin():
    resp = _preflight(HEALTH_PATH, "https://dashboard.test")
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "https://dashboard.test"
    assert resp.headers["access-control-allow-credentials"] == "true"


def test_allows_audience_header_on_authentication():
    resp = _preflight(AUTH_PATH, "https://dashboard.test", method="POST", headers="Authorization, X-Ucan-Aud")
    assert resp.status_code == 200
    allowed = resp.headers["access-control-allow-headers"].lower()
    assert "x-ucan-aud" in allowed
    assert "authorization" in allowed
