import json

from app.oscaims.db import session_scope
from app.oscaims.models import SessionRecord

from conftest import FRONTEND


def _set_cookie_headers(r):
    return [h for h in r.headers.getlist("Set-Cookie") if h.startswith("oscaims_sid=")]


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_root_greeting(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.data == b"Hello from server!"


def test_test_session_counts_views(client):
    r = client.get("/api/test-session")
    assert r.data == b"Session views: 1"
    r = client.get("/api/test-session")
    assert r.data == b"Session views: 2"
    r = client.get("/api/test-session")
    assert r.data == b"Session views: 3"


def test_session_cookie_attributes(client):
    r = client.get("/api/test-session")
    cookies = _set_cookie_headers(r)
    assert len(cookies) == 1
    header = cookies[0]
    assert "HttpOnly" in header
    assert "SameSite=Lax" in header
    assert "Max-Age=86400" in header
    assert "Secure" not in header


def test_session_payload_persisted_with_cookie(app, client):
    client.get("/api/test-session")
    with session_scope(app) as s:
        rows = s.query(SessionRecord).all()
    assert len(rows) == 1
    payload = json.loads(rows[0].data)
    assert payload["views"] == 1
    assert payload["cookie"]["expires"].endswith("Z")
    assert payload["cookie"]["originalMaxAge"] == 86400 * 1000
    assert payload["cookie"]["httpOnly"] is True


def test_untouched_session_sets_no_cookie(app, client):
    r = client.get("/health")
    assert _set_cookie_headers(r) == []
    r = client.get("/")
    assert _set_cookie_headers(r) == []
    with session_scope(app) as s:
        assert s.query(SessionRecord).count() == 0


def test_tampered_cookie_starts_fresh_session(client):
    client.get("/api/test-session")
    client.get("/api/test-session")
    client.set_cookie("oscaims_sid", "not-a-signed-id")
    r = client.get("/api/test-session")
    assert r.data == b"Session views: 1"


def test_cors_preflight_returns_configured_origin(client):
    for path in ("/api/senior-citizens/", "/api/officials/", "/api/user/login", "/api/sms/send"):
        r = client.options(
            path,
            headers={"Origin": FRONTEND, "Access-Control-Request-Method": "POST"},
        )
        assert r.status_code == 200
        assert r.headers.get("Access-Control-Allow-Origin") == FRONTEND
        assert r.headers.get("Access-Control-Allow-Credentials") == "true"


def test_cors_rejects_other_origins(client):
    r = client.options(
        "/api/officials/",
        headers={"Origin": "http://evil.test", "Access-Control-Request-Method": "GET"},
    )
    assert "Access-Control-Allow-Origin" not in r.headers


def test_cors_on_simple_request(client):
    r = client.get("/health", headers={"Origin": FRONTEND})
    assert r.headers.get("Access-Control-Allow-Origin") == FRONTEND


def test_unknown_route_is_json_404(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert "message" in r.json


def test_unhandled_error_returns_generic_500(app):
    def boom():
        raise RuntimeError("database password is hunter2")

    app.add_url_rule("/boom", "boom", boom)
    r = app.test_client().get("/boom")
    assert r.status_code == 500
    assert r.json == {"message": "Something went wrong on the server!"}
    assert b"hunter2" not in r.data


def test_uploads_are_served(app, client):
    import os

    uploads = app.config["UPLOADS_DIR"]
    assert os.path.isdir(uploads)
    with open(os.path.join(uploads, "photo.txt"), "w") as f:
        f.write("hello")
    r = client.get("/uploads/photo.txt")
    assert r.status_code == 200
    assert r.data == b"hello"
    assert client.get("/uploads/missing.png").status_code == 404
    assert client.get("/uploads/../test.db").status_code == 404


def test_session_store_failure_returns_generic_500(app, client, monkeypatch):
    from app.oscaims.session_store import SessionStoreError

    client.get("/api/test-session")

    def broken_get(sid, **kwargs):
        raise SessionStoreError("Session store operation failed: connection refused")

    monkeypatch.setattr(app.session_interface.store, "get", broken_get)
    r = client.get("/api/test-session")
    assert r.status_code == 500
    assert r.json == {"message": "Something went wrong on the server!"}
    assert b"connection refused" not in r.data
