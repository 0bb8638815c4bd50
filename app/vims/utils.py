from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are stored without tz)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


def parse_datetime(s: str | None) -> datetime | None:
    """Parse an ISO-8601 date or datetime; aware values are normalized to naive UTC."""
    s = (s or "").strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def isoformat(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def json_dumps_sorted(d: dict[str, Any]) -> str:
    return json.dumps(d, sort_keys=True, default=str)


def clean_str(v: Any) -> str | None:
    """Strip a form/JSON value; blank becomes None."""
    if v is None:
        return None
    return str(v).strip() or None
