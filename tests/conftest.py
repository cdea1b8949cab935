from datetime import datetime

import pytest
from werkzeug.security import generate_password_hash

from app.oscaims import auth, create_app
from app.oscaims.db import session_scope
from app.oscaims.models import Base, User

FRONTEND = "http://frontend.test"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SESSION_SECRET", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("NODE_ENV", "test")
    monkeypatch.setenv("FRONTEND_URL", FRONTEND)
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("SESSION_SWEEP_ENABLED", "0")
    for k in ("DB_HOST", "DB_USER", "DB_PASSWORD", "DB_PORT", "DB_DATABASE"):
        monkeypatch.delenv(k, raising=False)
    auth._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    now = datetime.utcnow()
    with session_scope(app) as s:
        s.add_all(
            [
                User(username="admin", password_hash=generate_password_hash("admin-pass"), role="admin",
                     status="inactive", created_at=now, updated_at=now),
                User(username="clerk", password_hash=generate_password_hash("clerk-pass"), role="staff",
                     status="inactive", created_at=now, updated_at=now),
            ]
        )

    yield app
    engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


def login(client, username="admin", password="admin-pass"):
    r = client.post("/api/user/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.json
    return r


def get_user(app, username) -> User:
    with session_scope(app) as s:
        return s.query(User).filter(User.username == username).one()


@pytest.fixture()
def admin_client(client):
    login(client)
    return client


@pytest.fixture()
def clerk_client(app):
    c = app.test_client()
    login(c, "clerk", "clerk-pass")
    return c
