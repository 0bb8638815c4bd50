import pytest

from app.vims import create_app
from app.vims import constants as C
from app.vims.db import session_scope
from app.vims.models import Base
from app.vims.modules.activities.service import ActivityLog
from app.vims.modules.system_config.service import ConfigurationService
from scripts.init_db import seed


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        seed(s, admin_username="admin", admin_email="admin@example.com", admin_password="pw-123456")

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert client.get("/healthz").data == b"ok"


def test_login_and_admin_access(client):
    # Anonymous is sent to the login page
    r = client.get("/admin/dashboard")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    r = client.post("/auth/login", data={"username": "admin", "password": "pw-123456"}, follow_redirects=False)
    assert r.status_code == 302

    r = client.get("/admin/dashboard")
    assert r.status_code == 200
    assert b"Dashboard" in r.data

    r = client.get("/admin/users?q=adm")
    assert r.status_code == 200
    assert b"admin@example.com" in r.data


def test_bad_credentials_redirect_back_to_login(client):
    r = client.post("/auth/login", data={"username": "admin", "password": "nope"})
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    assert client.get("/admin/dashboard").status_code == 302


def test_logout_is_recorded(app, client):
    client.post("/auth/login", data={"username": "admin@example.com", "password": "pw-123456"})
    r = client.get("/auth/logout")
    assert r.status_code == 302
    assert client.get("/admin/dashboard").status_code == 302

    with session_scope(app) as s:
        assert ActivityLog(s).count_by_type(C.LOGOUT) == 1


def test_seed_is_idempotent(app):
    with session_scope(app) as s:
        seed(s, admin_username="admin", admin_email="admin@example.com", admin_password="other-password")
    with session_scope(app) as s:
        configs = ConfigurationService(s)
        assert configs.count() == 5
        assert configs.get("system.version").is_read_only is True


def test_production_requires_postgres(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-real-secret")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///prod.db")
    with pytest.raises(RuntimeError):
        create_app()
