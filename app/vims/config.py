import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    activity_retention_days: int
    max_login_attempts: int
    lockout_minutes: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///vims.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        activity_retention_days=_getenv_int("ACTIVITY_RETENTION_DAYS", 30),
        max_login_attempts=_getenv_int("MAX_LOGIN_ATTEMPTS", 5),
        lockout_minutes=_getenv_int("LOCKOUT_MINUTES", 30),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "ACTIVITY_RETENTION_DAYS": s.activity_retention_days,
        "MAX_LOGIN_ATTEMPTS": s.max_login_attempts,
        "LOCKOUT_MINUTES": s.lockout_minutes,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
