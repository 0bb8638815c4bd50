from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import has_request_context, request, session
from sqlalchemy.orm import Session

from app.vims.models import User, UserActivity
from app.vims.utils import json_dumps_sorted, utcnow


def client_ip() -> str | None:
    """First X-Forwarded-For hop, then X-Real-IP, then the peer address."""
    if not has_request_context():
        return None
    forwarded = (request.headers.get("X-Forwarded-For") or "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = (request.headers.get("X-Real-IP") or "").strip()
    if real_ip:
        return real_ip
    return request.remote_addr


def request_provenance() -> dict[str, str | None]:
    if not has_request_context():
        return {"ip_address": None, "user_agent": None, "session_id": None}
    ua = request.headers.get("User-Agent")
    return {
        "ip_address": client_ip(),
        "user_agent": ua[:500] if ua else None,
        "session_id": session.get("sid"),
    }


def record_activity(
    s: Session,
    user: User,
    activity_type: str,
    description: str,
    *,
    success: bool = True,
    error_message: str | None = None,
    additional_data: dict[str, Any] | str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    session_id: str | None = None,
    activity_timestamp: datetime | None = None,
) -> UserActivity:
    """
    Append-only activity helper. Adds to `s` without committing; the caller's
    unit of work commits it together with the change it describes.
    """
    prov = request_provenance()
    now = utcnow()
    if isinstance(additional_data, dict):
        additional_data = json_dumps_sorted(additional_data)
    activity = UserActivity(
        user=user,
        activity_type=activity_type,
        activity_description=description,
        success=success,
        error_message=error_message,
        additional_data=additional_data,
        ip_address=ip_address or prov["ip_address"],
        user_agent=user_agent or prov["user_agent"],
        session_id=session_id or prov["session_id"],
        activity_timestamp=activity_timestamp or now,
        created_at=now,
    )
    s.add(activity)
    return activity
