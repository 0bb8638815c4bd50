from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.vims import constants as C
from app.vims.constants import ConfigurationType
from app.vims.db import unit_of_work
from app.vims.errors import (
    ConfigurationAlreadyExistsError,
    ConfigurationFormatError,
    ConfigurationNotFoundError,
    ReadOnlyConfigurationError,
    ValidationError,
)
from app.vims.modules.system_config.models import SystemConfiguration
from app.vims.pagination import Page, PageRequest, fetch
from app.vims.utils import clean_str, isoformat, utcnow

logger = logging.getLogger(__name__)

_MISSING = object()


def config_to_dict(c: SystemConfiguration) -> dict[str, Any]:
    return {
        "id": c.id,
        "config_key": c.config_key,
        # Encrypted values are stored as given; only the flag is surfaced.
        "config_value": c.config_value,
        "config_description": c.config_description,
        "config_type": c.config_type.value,
        "config_type_display": c.config_type.display_name,
        "is_encrypted": c.is_encrypted,
        "is_read_only": c.is_read_only,
        "created_at": isoformat(c.created_at),
        "updated_at": isoformat(c.updated_at),
        "created_by": c.created_by,
        "updated_by": c.updated_by,
    }


def parse_config_type(value: Any) -> ConfigurationType | None:
    v = clean_str(value)
    if v is None:
        return None
    try:
        return ConfigurationType(v.upper())
    except ValueError:
        return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def validate_config_payload(payload: dict) -> dict[str, str]:
    errors: dict[str, str] = {}
    key = clean_str(payload.get("config_key"))
    if not key:
        errors["config_key"] = "Configuration key is required."
    elif len(key) > 100:
        errors["config_key"] = "Configuration key must not exceed 100 characters."

    value = payload.get("config_value")
    if value is None or str(value).strip() == "":
        errors["config_value"] = "Configuration value is required."
    elif len(str(value)) > 1000:
        errors["config_value"] = "Configuration value must not exceed 1000 characters."

    desc = clean_str(payload.get("config_description"))
    if desc and len(desc) > 500:
        errors["config_description"] = "Description must not exceed 500 characters."

    type_raw = clean_str(payload.get("config_type"))
    if type_raw is not None and parse_config_type(type_raw) is None:
        errors["config_type"] = (
            f"Invalid configuration type. Must be one of: {', '.join(t.value for t in ConfigurationType)}"
        )
    return errors


class ConfigurationService:
    """Key/value store of named system settings."""

    def __init__(self, s: Session) -> None:
        self.s = s

    # ---------- Lookups ----------
    def _find(self, key: str) -> SystemConfiguration | None:
        return self.s.execute(
            select(SystemConfiguration).where(SystemConfiguration.config_key == key)
        ).scalar_one_or_none()

    def get(self, key: str) -> SystemConfiguration:
        entry = self._find(key)
        if not entry:
            raise ConfigurationNotFoundError(key)
        return entry

    def exists(self, key: str) -> bool:
        return self.s.execute(
            select(SystemConfiguration.id).where(SystemConfiguration.config_key == key)
        ).first() is not None

    def get_value(self, key: str, default: Any = _MISSING) -> str:
        entry = self._find(key)
        if entry is None:
            if default is _MISSING:
                raise ConfigurationNotFoundError(key)
            return default
        return entry.config_value

    def get_bool(self, key: str, default: Any = _MISSING) -> bool:
        """Only "true"/"false" (any case) are accepted; the default covers a missing key only."""
        entry = self._find(key)
        if entry is None:
            if default is _MISSING:
                raise ConfigurationNotFoundError(key)
            return default
        text = entry.config_value.strip().lower()
        if text not in ("true", "false"):
            raise ConfigurationFormatError(key, entry.config_value, "boolean")
        return text == "true"

    def get_int(self, key: str, default: Any = _MISSING) -> int:
        entry = self._find(key)
        if entry is None:
            if default is _MISSING:
                raise ConfigurationNotFoundError(key)
            return default
        try:
            return int(entry.config_value.strip())
        except ValueError as e:
            raise ConfigurationFormatError(key, entry.config_value, "integer") from e

    # ---------- Mutations ----------
    def upsert(self, payload: dict, updated_by: str | None) -> tuple[SystemConfiguration, bool]:
        errors = validate_config_payload(payload)
        if errors:
            raise ValidationError(errors)

        key = clean_str(payload["config_key"])
        now = utcnow()
        entry = self._find(key)
        created = entry is None
        if entry is not None and entry.is_read_only:
            raise ReadOnlyConfigurationError(key)

        logger.info("%s configuration: %s", "Creating" if created else "Updating", key)
        with unit_of_work(self.s):
            if created:
                entry = SystemConfiguration(
                    config_key=key,
                    created_at=now,
                    created_by=updated_by,
                )
                self.s.add(entry)
            entry.config_value = str(payload["config_value"])
            entry.config_description = clean_str(payload.get("config_description"))
            entry.config_type = parse_config_type(payload.get("config_type")) or (
                entry.config_type or ConfigurationType.SYSTEM
            )
            entry.is_encrypted = _as_bool(payload.get("is_encrypted"))
            entry.is_read_only = _as_bool(payload.get("is_read_only"))
            entry.updated_at = now
            entry.updated_by = updated_by
            try:
                self.s.flush()
            except IntegrityError as e:
                raise ConfigurationAlreadyExistsError(key) from e
        logger.info("Configuration saved: %s", key)
        return entry, created

    def update_value(self, key: str, value: Any, updated_by: str | None) -> SystemConfiguration:
        entry = self.get(key)
        if entry.is_read_only:
            raise ReadOnlyConfigurationError(key)
        if value is None or str(value).strip() == "":
            raise ValidationError({"config_value": "Configuration value is required."})
        if len(str(value)) > 1000:
            raise ValidationError({"config_value": "Configuration value must not exceed 1000 characters."})

        logger.info("Updating configuration value: %s", key)
        with unit_of_work(self.s):
            entry.config_value = str(value)
            entry.updated_at = utcnow()
            entry.updated_by = updated_by
        return entry

    def delete(self, key: str, deleted_by: str | None) -> None:
        entry = self.get(key)
        if entry.is_read_only:
            raise ReadOnlyConfigurationError(key, action="delete")
        logger.info("Deleting configuration %s (by %s)", key, deleted_by)
        with unit_of_work(self.s):
            self.s.delete(entry)

    # ---------- Listings ----------
    def _list(self, *criteria: Any, page: PageRequest | None = None) -> list[SystemConfiguration] | Page:
        stmt = select(SystemConfiguration)
        if criteria:
            stmt = stmt.where(*criteria)
        return fetch(self.s, stmt.order_by(SystemConfiguration.config_key.asc()), page)

    @staticmethod
    def _prefixed(prefixes: tuple[str, ...]):
        return or_(*(SystemConfiguration.config_key.like(f"{p}%") for p in prefixes))

    def list_all(self, page: PageRequest | None = None):
        return self._list(page=page)

    def by_type(self, config_type: ConfigurationType, page: PageRequest | None = None):
        return self._list(SystemConfiguration.config_type == config_type, page=page)

    def read_only(self):
        return self._list(SystemConfiguration.is_read_only.is_(True))

    def encrypted(self):
        return self._list(SystemConfiguration.is_encrypted.is_(True))

    def search_by_key(self, pattern: str, page: PageRequest | None = None):
        """SQL LIKE on the key; `*` works as a wildcard too. A bare term matches as a substring."""
        like = (pattern or "").replace("*", "%")
        if "%" not in like and "_" not in like:
            like = f"%{like}%"
        return self._list(SystemConfiguration.config_key.like(like), page=page)

    def search_by_description(self, term: str, page: PageRequest | None = None):
        return self._list(
            SystemConfiguration.config_description.icontains(term or "", autoescape=True), page=page
        )

    def email_entries(self):
        return self._list(self._prefixed(C.EMAIL_CONFIG_PREFIXES))

    def security_entries(self):
        return self._list(self._prefixed(C.SECURITY_CONFIG_PREFIXES))

    def database_entries(self):
        return self._list(self._prefixed(C.DATABASE_CONFIG_PREFIXES))

    def critical_entries(self):
        return self._list(SystemConfiguration.config_key.in_(C.CRITICAL_CONFIG_KEYS))

    def needing_encryption(self):
        key = func.lower(SystemConfiguration.config_key)
        return self._list(
            SystemConfiguration.is_encrypted.is_(False),
            or_(*(key.like(f"%{m}%") for m in C.SENSITIVE_KEY_MARKERS)),
        )

    # ---------- Counts ----------
    def _count(self, *criteria: Any) -> int:
        stmt = select(func.count(SystemConfiguration.id))
        if criteria:
            stmt = stmt.where(*criteria)
        return int(self.s.execute(stmt).scalar_one())

    def count(self) -> int:
        return self._count()

    def count_by_type(self, config_type: ConfigurationType) -> int:
        return self._count(SystemConfiguration.config_type == config_type)

    def count_read_only(self) -> int:
        return self._count(SystemConfiguration.is_read_only.is_(True))

    def count_encrypted(self) -> int:
        return self._count(SystemConfiguration.is_encrypted.is_(True))

    def statistics(self) -> dict[str, Any]:
        return {
            "total_configurations": self.count(),
            "read_only_configurations": self.count_read_only(),
            "encrypted_configurations": self.count_encrypted(),
            "configurations_by_type": {t.value: self.count_by_type(t) for t in ConfigurationType},
        }
