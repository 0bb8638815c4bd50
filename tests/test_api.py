"""HTTP tests for the /api/admin surface."""
from datetime import timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.vims import create_app
from app.vims.auth import _check_rate_limit
from app.vims.constants import UserRole, UserStatus
from app.vims.db import session_scope
from app.vims.models import Base, User
from app.vims.utils import utcnow
from scripts.init_db import seed

ADMIN_PASSWORD = "admin-pass-123"


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        seed(s, admin_username="admin", admin_email="admin@example.com", admin_password=ADMIN_PASSWORD)
        s.add(
            User(
                username="clerk",
                email="clerk@example.com",
                password_hash=generate_password_hash("clerk-pass-123"),
                first_name="Casey",
                last_name="Clerk",
                role=UserRole.CUSTOMER_SERVICE,
                status=UserStatus.ACTIVE,
            )
        )

    return app.test_client()


def _login(client, username="admin", password=ADMIN_PASSWORD) -> dict:
    client.post("/auth/login", data={"username": username, "password": password})
    with client.session_transaction() as sess:
        return {"X-CSRF-Token": sess["csrf_token"]}


def _new_user(**overrides):
    data = {
        "username": "alice",
        "email": "alice@x.com",
        "password": "s3cret-pass",
        "first_name": "Alice",
        "last_name": "Anders",
        "role": "POLICY_OFFICER",
    }
    data.update(overrides)
    return data


def test_api_rejects_anonymous(client):
    r = client.get("/api/admin/users")
    assert r.status_code == 403
    assert r.json["error"] == "UNAUTHORIZED_ACCESS"
    assert set(r.json) == {"error", "message", "status", "timestamp"}


def test_api_rejects_non_admin_role(client):
    _login(client, "clerk", "clerk-pass-123")
    r = client.get("/api/admin/dashboard")
    assert r.status_code == 403
    assert r.json["error"] == "UNAUTHORIZED_ACCESS"


def test_mutation_without_csrf_token_is_rejected(client):
    _login(client)
    r = client.post("/api/admin/users", json=_new_user())
    assert r.status_code == 400


def test_user_lifecycle_over_http(client):
    headers = _login(client)

    r = client.post("/api/admin/users", json=_new_user(), headers=headers)
    assert r.status_code == 201
    alice = r.json
    assert alice["status"] == "PENDING"
    assert alice["created_by"] == "admin"
    assert "password_hash" not in alice

    r = client.post("/api/admin/users", json=_new_user(email="other@x.com"), headers=headers)
    assert r.status_code == 409
    assert r.json["error"] == "ALREADY_EXISTS"

    r = client.post(f"/api/admin/users/{alice['id']}/block", json={"blocked_by": "supervisor"}, headers=headers)
    assert r.status_code == 200
    assert r.json["status"] == "BLOCKED"
    assert r.json["updated_by"] == "supervisor"

    r = client.get("/api/admin/users/status/BLOCKED")
    assert [u["username"] for u in r.json] == ["alice"]

    r = client.post(f"/api/admin/users/{alice['id']}/unblock", headers=headers)
    assert r.json["status"] == "ACTIVE"

    r = client.get(f"/api/admin/activities/user/{alice['id']}")
    assert [a["activity_type"] for a in r.json] == ["USER_UNBLOCKED", "USER_BLOCKED", "USER_CREATED"]

    r = client.delete(f"/api/admin/users/{alice['id']}", headers=headers)
    assert r.status_code == 204
    r = client.get("/api/admin/users/search?q=alice")
    assert r.json == []
    r = client.get(f"/api/admin/users/{alice['id']}")
    assert r.json["is_deleted"] is True


def test_validation_errors_include_field_errors(client):
    headers = _login(client)
    r = client.post("/api/admin/users", json=_new_user(username="al", email="bad"), headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "VALIDATION_ERROR"
    assert set(r.json["fieldErrors"]) == {"username", "email"}


def test_unknown_user_is_404(client):
    _login(client)
    r = client.get("/api/admin/users/4242")
    assert r.status_code == 404
    assert r.json["error"] == "NOT_FOUND"
    r = client.get("/api/admin/users/role/PILOT")
    assert r.status_code == 400


def test_locked_account_login_returns_423(client):
    headers = _login(client)
    r = client.get("/api/admin/users/username/clerk")
    clerk_id = r.json["id"]
    r = client.post(f"/api/admin/users/{clerk_id}/lock", json={"minutes": 30}, headers=headers)
    assert r.status_code == 200
    assert r.json["account_locked"] is True

    r = client.get("/api/admin/users/locked")
    assert [u["username"] for u in r.json] == ["clerk"]

    other = client.application.test_client()
    r = other.post("/auth/login", json={"username": "clerk", "password": "clerk-pass-123"})
    assert r.status_code == 423
    assert r.json["error"] == "ACCOUNT_LOCKED"

    r = other.post("/auth/login", data={"username": "clerk", "password": "clerk-pass-123"})
    assert r.status_code == 423

    client.post(f"/api/admin/users/{clerk_id}/unlock", headers=headers)
    r = other.post("/auth/login", json={"username": "clerk", "password": "clerk-pass-123"})
    assert r.status_code == 200
    assert r.json["user"]["username"] == "clerk"


def test_list_endpoints_paginate_on_request(client):
    headers = _login(client)
    for i in range(3):
        client.post(
            "/api/admin/users", json=_new_user(username=f"user{i}", email=f"u{i}@x.com"), headers=headers
        )
    r = client.get("/api/admin/users")
    assert len(r.json) == 5
    r = client.get("/api/admin/users?page=2&size=2")
    assert r.json["page"] == 2 and r.json["size"] == 2
    assert r.json["total"] == 5 and r.json["total_pages"] == 3
    assert [u["username"] for u in r.json["items"]] == ["user0", "user1"]
    r = client.get("/api/admin/users?page=0")
    assert r.status_code == 400


def test_configuration_endpoints(client):
    headers = _login(client)

    r = client.post(
        "/api/admin/config",
        json={"config_key": "feature.enabled", "config_value": "maybe", "config_type": "BUSINESS"},
        headers=headers,
    )
    assert r.status_code == 201
    r = client.get("/api/admin/config/feature.enabled/boolean?default=false")
    assert r.status_code == 400
    assert r.json["error"] == "VALIDATION_ERROR"

    r = client.put("/api/admin/config/feature.enabled/value", json={"config_value": "true"}, headers=headers)
    assert r.status_code == 200
    assert client.get("/api/admin/config/feature.enabled/boolean").json["value"] is True
    assert client.get("/api/admin/config/missing.key/exists").json["exists"] is False
    assert client.get("/api/admin/config/missing.key/integer?default=9").json["value"] == 9
    assert client.get("/api/admin/config/missing.key").status_code == 404

    # seeded read-only entry
    r = client.put("/api/admin/config/system.version/value", json={"config_value": "9.9.9"}, headers=headers)
    assert r.status_code == 400
    assert client.get("/api/admin/config/system.version/value").json["value"] == "1.0.0"
    assert [c["config_key"] for c in client.get("/api/admin/config/read-only").json] == ["system.version"]

    r = client.delete("/api/admin/config/feature.enabled", headers=headers)
    assert r.status_code == 204


def test_reporting_endpoints(client):
    headers = _login(client)
    r = client.get("/api/admin/dashboard")
    assert r.status_code == 200
    assert r.json["total_users"] == 2
    assert client.get("/api/admin/dashboard/statistics").status_code == 200

    r = client.get("/api/admin/system/health")
    assert r.json["database"] == "HEALTHY"
    assert r.json["configuration_system"] == "HEALTHY"

    r = client.get("/api/admin/reports/activities?hours=1")
    assert r.json["report_type"] == "ACTIVITY_REPORT"
    assert r.json["activities_by_type"] == {"LOGIN_SUCCESS": 1}

    assert client.get("/api/admin/reports/system").json["system_version"] == "1.0.0"
    assert client.get("/api/admin/reports/users").status_code == 200
    assert client.get("/api/admin/system/configuration/summary").json["read_only_configurations"] == 1

    r = client.post("/api/admin/system/cleanup?days_to_keep=7", headers=headers)
    assert r.status_code == 200
    assert r.json["days_to_keep"] == 7
    assert r.json["deleted_activities"] == 0


def test_activity_endpoints(client):
    _login(client)
    _login(client, "admin", "wrong-password")
    r = client.get("/api/admin/activities/failed")
    assert [a["activity_type"] for a in r.json] == ["LOGIN_FAILED"]
    r = client.get("/api/admin/activities/type/LOGIN_SUCCESS")
    assert len(r.json) == 1
    assert r.json[0]["ip_address"] == "127.0.0.1"
    assert r.json[0]["session_id"]
    r = client.get(f"/api/admin/activities/session/{r.json[0]['session_id']}")
    assert len(r.json) == 1
    r = client.get("/api/admin/activities/frequent-types?limit=1")
    assert len(r.json) == 1
    r = client.get("/api/admin/activities/statistics")
    assert r.json["total_activities"] == 2
    r = client.get("/api/admin/activities/date-range?start=2000-01-01T00:00:00&end=2100-01-01T00:00:00")
    assert len(r.json) == 2
    r = client.get("/api/admin/activities/date-range?start=soon")
    assert r.status_code == 400
    assert set(r.json["fieldErrors"]) == {"start", "end"}


def test_out_of_range_durations_are_400(client):
    headers = _login(client)
    clerk_id = client.get("/api/admin/users/username/clerk").json["id"]
    r = client.post(f"/api/admin/users/{clerk_id}/lock", json={"minutes": 10**10}, headers=headers)
    assert r.status_code == 400
    assert set(r.json["fieldErrors"]) == {"minutes"}
    assert client.get(f"/api/admin/users/{clerk_id}").json["account_locked"] is False

    for path in ("/api/admin/activities/recent", "/api/admin/reports/activities"):
        r = client.get(f"{path}?hours={10**12}")
        assert r.status_code == 400
        assert set(r.json["fieldErrors"]) == {"hours"}


def test_login_failures_have_their_own_error_codes(client):
    r = client.post("/auth/login", json={"username": "admin", "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json["error"] == "INVALID_CREDENTIALS"

    for _ in range(4):
        client.post("/auth/login", json={"username": "admin", "password": "wrong-password"})
    r = client.post("/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert r.status_code == 429
    assert r.json["error"] == "TOO_MANY_REQUESTS"


def test_rate_limit_entries_are_dropped_once_expired(client, monkeypatch):
    client.post("/auth/login", json={"username": "admin", "password": "wrong-password"})
    attempts = client.application.extensions["login_attempts"]
    assert list(attempts) == ["127.0.0.1"]

    later = utcnow() + timedelta(minutes=10)
    monkeypatch.setattr("app.vims.auth.utcnow", lambda: later)
    with client.application.app_context():
        assert _check_rate_limit("127.0.0.1") is False
    assert "127.0.0.1" not in attempts
