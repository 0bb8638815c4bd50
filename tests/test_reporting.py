"""Tests for dashboard, reports, health and cleanup."""
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from app.vims import create_app
from app.vims import constants as C
from app.vims.constants import UserRole, UserStatus
from app.vims.db import unit_of_work
from app.vims.models import Base, User
from app.vims.modules.activities.service import ActivityLog
from app.vims.modules.reporting.service import HEALTHY, UNHEALTHY, WARNING, ReportingService
from app.vims.modules.system_config.service import ConfigurationService
from app.vims.utils import utcnow


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


@pytest.fixture()
def s(app):
    session = app.extensions["sqlalchemy_sessionmaker"]()
    yield session
    session.close()


def _user(s, username, role=UserRole.POLICY_OFFICER, status=UserStatus.ACTIVE, **extra):
    u = User(
        username=username,
        email=f"{username}@x.com",
        password_hash="x",
        first_name=username.title(),
        last_name="Test",
        role=role,
        status=status,
        **extra,
    )
    s.add(u)
    return u


@pytest.fixture()
def populated(s):
    admin = _user(s, "admin", role=UserRole.ADMIN_OFFICER)
    _user(s, "bob", status=UserStatus.BLOCKED)
    _user(s, "cara", status=UserStatus.PENDING)
    _user(s, "dan", locked_until=utcnow() + timedelta(minutes=10))
    _user(s, "gone", is_deleted=True)
    s.commit()

    now = utcnow()
    log = ActivityLog(s)
    with unit_of_work(s):
        log.record_success(admin, C.LOGIN_SUCCESS, "User logged in successfully", activity_timestamp=now - timedelta(hours=1))
        log.record_failure(admin, C.LOGIN_FAILED, "Invalid password", "Invalid credentials", activity_timestamp=now - timedelta(hours=2))
        log.record_success(admin, C.USER_CREATED, "User account created successfully", activity_timestamp=now - timedelta(days=3))
        log.record_success(admin, C.USER_UPDATED, "User account updated successfully", activity_timestamp=now - timedelta(days=20))
    ConfigurationService(s).upsert({"config_key": "system.name", "config_value": "VIMS"}, updated_by="admin")
    return s


def test_dashboard_statistics(populated):
    stats = ReportingService(populated).dashboard_statistics()
    assert stats["total_users"] == 4
    assert stats["active_users"] == 2
    assert stats["blocked_users"] == 1
    assert stats["pending_users"] == 1
    assert stats["users_by_role"]["ADMIN_OFFICER"] == 1
    assert stats["total_activities"] == 4
    assert stats["activities_last_24_hours"] == 2
    assert stats["activities_last_7_days"] == 3
    assert stats["total_configurations"] == 1
    assert [a["activity_type"] for a in stats["recent_activities"]] == [C.LOGIN_SUCCESS, C.LOGIN_FAILED]
    assert [a["activity_type"] for a in stats["failed_activities"]] == [C.LOGIN_FAILED]


def test_system_overview_report(populated):
    report = ReportingService(populated).system_overview_report()
    assert report["report_type"] == "SYSTEM_OVERVIEW"
    assert report["system_version"] == C.SYSTEM_VERSION
    assert report["failed_login_attempts"] == 1
    assert report["locked_accounts"] == 1
    assert report["activities_last_30_days"] == 4
    assert report["successful_activities"] == 3


def test_activity_report_counts_only_the_window(populated):
    report = ReportingService(populated).activity_report(hours=24)
    assert report["report_title"] == "Activity Report - Last 24 Hours"
    assert report["total_activities"] == 2
    assert report["failed_activities"] == 1
    assert report["activities_by_type"] == {C.LOGIN_FAILED: 1, C.LOGIN_SUCCESS: 1}


def test_user_statistics_report(populated):
    report = ReportingService(populated).user_statistics_report()
    assert report["report_type"] == "USER_STATISTICS"
    assert report["users_by_status"]["BLOCKED"] == 1
    assert report["locked_accounts"] == 1


def test_health_with_activity_failures_is_warning(populated):
    health = ReportingService(populated).system_health()
    assert health["database"] == HEALTHY
    assert health["user_system"] == HEALTHY
    assert health["configuration_system"] == HEALTHY
    # 1 failure out of 4 is above the 10% threshold
    assert health["failure_rate"] == pytest.approx(0.25)
    assert health["activity_system"] == WARNING
    assert health["overall_status"] == WARNING


def test_health_empty_system_warns(s):
    health = ReportingService(s).system_health()
    assert health["database"] == HEALTHY
    assert health["user_system"] == WARNING
    assert health["activity_system"] == HEALTHY
    assert health["configuration_system"] == WARNING
    assert health["overall_status"] == WARNING


def test_health_degrades_when_a_table_is_missing(app, populated):
    Base.metadata.tables["user_activities"].drop(bind=app.extensions["sqlalchemy_engine"])
    health = ReportingService(populated).system_health()
    assert health["activity_system"] == UNHEALTHY
    assert health["database"] == HEALTHY
    assert health["user_system"] == HEALTHY
    assert health["overall_status"] == WARNING


def test_health_reports_unreachable_database(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path/'missing'/'nowhere.db'}")
    with Session(engine) as broken:
        health = ReportingService(broken).system_health()
    assert health["database"] == UNHEALTHY
    assert health["user_system"] == UNHEALTHY
    assert health["overall_status"] == UNHEALTHY


def test_cleanup_uses_configured_retention(populated):
    ConfigurationService(populated).upsert(
        {"config_key": C.CFG_RETENTION_DAYS, "config_value": "10"}, updated_by="admin"
    )
    result = ReportingService(populated, default_retention_days=30).cleanup_old_data()
    assert result["days_to_keep"] == 10
    assert result["deleted_activities"] == 1
    assert ActivityLog(populated).count() == 3


def test_cleanup_explicit_days_override(populated):
    result = ReportingService(populated).cleanup_old_data(1)
    assert result == {"days_to_keep": 1, "deleted_activities": 2, "timestamp": result["timestamp"]}


def test_configuration_summary(populated):
    summary = ReportingService(populated).configuration_summary()
    assert summary["total_configurations"] == 1
    assert summary["configurations_by_type"]["SYSTEM"] == 1
