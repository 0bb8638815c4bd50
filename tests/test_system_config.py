"""Tests for the configuration store."""
import pytest

from app.vims import create_app
from app.vims.constants import ConfigurationType
from app.vims.errors import (
    ConfigurationFormatError,
    ConfigurationNotFoundError,
    ReadOnlyConfigurationError,
    ValidationError,
)
from app.vims.models import Base
from app.vims.modules.system_config.service import ConfigurationService


@pytest.fixture()
def svc(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    session = app.extensions["sqlalchemy_sessionmaker"]()
    yield ConfigurationService(session)
    session.close()


def _save(svc, key, value, **extra):
    payload = {"config_key": key, "config_value": value}
    payload.update(extra)
    return svc.upsert(payload, updated_by="admin")


def test_upsert_creates_then_updates(svc):
    entry, created = _save(svc, "ui.theme", "dark", config_type="UI")
    assert created is True
    assert entry.config_type == ConfigurationType.UI
    assert entry.created_by == "admin"

    entry, created = _save(svc, "ui.theme", "light", config_type="UI", config_description="Colour scheme")
    assert created is False
    assert svc.get_value("ui.theme") == "light"
    assert svc.get("ui.theme").config_description == "Colour scheme"
    assert svc.count() == 1


def test_upsert_validation(svc):
    with pytest.raises(ValidationError) as exc:
        svc.upsert({"config_key": "", "config_value": " ", "config_type": "COLOUR"}, updated_by="admin")
    assert set(exc.value.field_errors) == {"config_key", "config_value", "config_type"}


def test_read_only_entry_cannot_change(svc):
    _save(svc, "system.version", "1.0.0", is_read_only=True)
    with pytest.raises(ReadOnlyConfigurationError):
        svc.update_value("system.version", "2.0.0", updated_by="admin")
    with pytest.raises(ReadOnlyConfigurationError):
        _save(svc, "system.version", "2.0.0")
    with pytest.raises(ReadOnlyConfigurationError):
        svc.delete("system.version", deleted_by="admin")
    assert svc.get_value("system.version") == "1.0.0"


def test_update_value_and_delete(svc):
    _save(svc, "email.smtp.host", "smtp.local")
    svc.update_value("email.smtp.host", "smtp.example.com", updated_by="ops")
    assert svc.get("email.smtp.host").updated_by == "ops"
    svc.delete("email.smtp.host", deleted_by="ops")
    assert svc.exists("email.smtp.host") is False
    with pytest.raises(ConfigurationNotFoundError):
        svc.get("email.smtp.host")


def test_typed_getters(svc):
    _save(svc, "feature.enabled", " TRUE ")
    _save(svc, "feature.limit", "42")
    _save(svc, "feature.flag", "yes")
    assert svc.get_bool("feature.enabled") is True
    assert svc.get_int("feature.limit") == 42
    assert svc.get_bool("missing.key", False) is False
    assert svc.get_int("missing.key", 7) == 7
    assert svc.get_value("missing.key", "fallback") == "fallback"
    with pytest.raises(ConfigurationNotFoundError):
        svc.get_bool("missing.key")


def test_malformed_values_raise_even_with_default(svc):
    _save(svc, "feature.flag", "yes")
    _save(svc, "feature.limit", "many")
    with pytest.raises(ConfigurationFormatError):
        svc.get_bool("feature.flag", False)
    with pytest.raises(ConfigurationFormatError):
        svc.get_int("feature.limit", 3)


def test_curated_lists(svc):
    _save(svc, "system.name", "VIMS")
    _save(svc, "email.from", "noreply@vims.local", config_type="EMAIL")
    _save(svc, "mail.smtp.password", "hunter2", config_type="EMAIL")
    _save(svc, "security.jwt.secret", "s3", config_type="SECURITY", is_encrypted=True)
    _save(svc, "db.pool.size", "5", config_type="DATABASE")

    keys = lambda entries: [e.config_key for e in entries]  # noqa: E731
    assert keys(svc.email_entries()) == ["email.from", "mail.smtp.password"]
    assert keys(svc.security_entries()) == ["security.jwt.secret"]
    assert keys(svc.database_entries()) == ["db.pool.size"]
    assert keys(svc.critical_entries()) == ["security.jwt.secret", "system.name"]
    assert keys(svc.needing_encryption()) == ["mail.smtp.password"]
    assert keys(svc.encrypted()) == ["security.jwt.secret"]
    assert keys(svc.by_type(ConfigurationType.EMAIL)) == ["email.from", "mail.smtp.password"]
    assert keys(svc.search_by_key("mail.*")) == ["mail.smtp.password"]
    assert keys(svc.search_by_key("smtp")) == ["mail.smtp.password"]


def test_statistics(svc):
    _save(svc, "system.version", "1.0.0", is_read_only=True)
    _save(svc, "security.jwt.secret", "s3", config_type="SECURITY", is_encrypted=True)
    stats = svc.statistics()
    assert stats["total_configurations"] == 2
    assert stats["read_only_configurations"] == 1
    assert stats["encrypted_configurations"] == 1
    assert stats["configurations_by_type"]["SECURITY"] == 1
    assert stats["configurations_by_type"]["UI"] == 0


def test_description_search_is_literal(svc):
    _save(svc, "ui.discount", "1", config_description="Discount of 50% on renewals")
    _save(svc, "ui.other", "2", config_description="Discount of 50 points")
    assert [e.config_key for e in svc.search_by_description("50%")] == ["ui.discount"]
    assert [e.config_key for e in svc.search_by_description("DISCOUNT")] == ["ui.discount", "ui.other"]
