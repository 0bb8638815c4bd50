"""
Create tables and seed the initial administrator and default configuration.

Idempotent: existing users and configuration entries are never overwritten
(an existing admin keeps its password).

Usage:
  python scripts/init_db.py
"""

import os
import sys
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.vims import constants as C  # noqa: E402
from app.vims.constants import ConfigurationType, UserRole, UserStatus  # noqa: E402
from app.vims.models import Base, User  # noqa: E402
from app.vims.modules.system_config.models import SystemConfiguration  # noqa: E402
from app.vims.utils import utcnow  # noqa: E402
from scripts._db_utils import resolve_database_url, script_session  # noqa: E402

# (key, value, description, type, read_only)
DEFAULT_CONFIGURATION: tuple[tuple[str, str, str, ConfigurationType, bool], ...] = (
    ("system.name", "Vehicle Insurance Management System", "Display name of the system", ConfigurationType.SYSTEM, False),
    ("system.version", C.SYSTEM_VERSION, "Deployed system version", ConfigurationType.SYSTEM, True),
    (C.CFG_MAX_LOGIN_ATTEMPTS, "5", "Failed logins before the account is locked", ConfigurationType.SECURITY, False),
    (C.CFG_LOCKOUT_MINUTES, "30", "Minutes an account stays locked after too many failed logins", ConfigurationType.SECURITY, False),
    (C.CFG_RETENTION_DAYS, "30", "Days of activity history kept by the cleanup job", ConfigurationType.SYSTEM, False),
)


def seed(s: Session, *, admin_username: str, admin_email: str, admin_password: str) -> User:
    now = utcnow()

    def ensure_config(key: str, value: str, description: str, config_type: ConfigurationType, read_only: bool) -> None:
        exists = s.execute(select(SystemConfiguration.id).where(SystemConfiguration.config_key == key)).first()
        if exists:
            return
        s.add(
            SystemConfiguration(
                config_key=key,
                config_value=value,
                config_description=description,
                config_type=config_type,
                is_read_only=read_only,
                is_encrypted=False,
                created_at=now,
                updated_at=now,
                created_by="SYSTEM",
                updated_by="SYSTEM",
            )
        )

    for row in DEFAULT_CONFIGURATION:
        ensure_config(*row)

    user = s.execute(select(User).where(User.username == admin_username)).scalar_one_or_none()
    if not user:
        user = User(
            username=admin_username,
            email=admin_email,
            password_hash=generate_password_hash(admin_password),
            first_name="System",
            last_name="Administrator",
            role=UserRole.ADMIN_OFFICER,
            status=UserStatus.ACTIVE,
            login_attempts=0,
            is_deleted=False,
            created_at=now,
            updated_at=now,
            created_by="SYSTEM",
            updated_by="SYSTEM",
        )
        s.add(user)
    return user


def seed_only(*, database_url: str | None = None) -> None:
    """
    Create missing tables and seed defaults in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@vims.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me-now"

    db_url = resolve_database_url(database_url)
    with script_session(db_url) as s:
        Base.metadata.create_all(s.get_bind())
        seed(s, admin_username=admin_username, admin_email=admin_email, admin_password=admin_password)

    print("Initialized database (seed_only).")
    print(f"Admin username: {admin_username}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
