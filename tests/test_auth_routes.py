"""Registration, login, session and the JSON error envelope."""

from conftest import register


def test_health(app):
    resp = app.test_client().get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "status": "up"}


def test_security_headers_and_request_id(app):
    resp = app.test_client().get("/api/health", headers={"X-Request-Id": "abc-123"})
    assert resp.headers["X-Request-Id"] == "abc-123"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"
    assert resp.headers["Cache-Control"] == "no-store"


def test_register_logs_in(app):
    client = app.test_client()
    user = register(client, "  Carol@Example.COM ", first_name="Carol", username="CarolK")
    assert user["email"] == "carol@example.com"
    assert user["username"] == "carolk"
    assert user["name"] == "Carol"
    assert "password_hash" not in user

    me = client.get("/api/me").get_json()
    assert me["user"]["id"] == user["id"]


def test_register_duplicate_email(app):
    register(app.test_client(), "dup@example.com")
    resp = app.test_client().post("/api/auth/register", json={"email": "DUP@example.com", "password": "secret123"})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "conflict"


def test_register_without_username_twice(app):
    register(app.test_client(), "one@example.com")
    register(app.test_client(), "two@example.com")


def test_register_validation(app):
    client = app.test_client()
    resp = client.post("/api/auth/register", json={"email": "x@example.com", "password": "123"})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["ok"] is False
    assert body["code"] == "validation_error"
    assert body["details"] == {"field": "password"}

    resp = client.post("/api/auth/register", json={"email": "not-an-email", "password": "secret123"})
    assert resp.status_code == 400
    assert resp.get_json()["details"] == {"field": "email"}


def test_non_json_body(app):
    resp = app.test_client().post("/api/auth/login", data="email=x", content_type="application/x-www-form-urlencoded")
    assert resp.status_code == 415
    assert resp.get_json()["code"] == "unsupported_media_type"


def test_login_and_logout(app):
    register(app.test_client(), "dan@example.com", password="hunter22")
    client = app.test_client()

    resp = client.post("/api/auth/login", json={"email": "dan@example.com", "password": "wrong-pass"})
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "unauthorized"

    resp = client.post("/api/auth/login", json={"email": "DAN@example.com", "password": "hunter22"})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["email"] == "dan@example.com"

    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/me").get_json() == {"ok": True, "user": None}


def test_protected_routes_require_login(app):
    client = app.test_client()
    for path in ("/api/teams", "/api/organizations", "/api/friends", "/api/dashboard/upcoming-events"):
        resp = client.get(path)
        assert resp.status_code == 401
        assert resp.get_json() == {"ok": False, "error": "Authentication required.", "code": "unauthorized"}


def test_unknown_route_is_json_404(app):
    resp = app.test_client().get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "not_found"
