from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.vims.api import int_arg, listing, page_request
from app.vims.constants import ADMIN_ROLE
from app.vims.db import db_session
from app.vims.errors import ValidationError
from app.vims.modules.activities.service import ActivityLog, activity_to_dict
from app.vims.rbac import require_role
from app.vims.utils import parse_datetime

bp = Blueprint("activities_api", __name__)


def _log() -> ActivityLog:
    return ActivityLog(db_session())


@bp.get("/user/<int:user_id>")
@require_role(ADMIN_ROLE)
def user_activities(user_id: int):
    return listing(_log().for_user(user_id, page_request()), activity_to_dict)


@bp.get("/recent")
@require_role(ADMIN_ROLE)
def recent_activities():
    hours = int_arg("hours", 24)
    return listing(_log().recent(hours, page_request()), activity_to_dict)


@bp.get("/type/<activity_type>")
@require_role(ADMIN_ROLE)
def activities_by_type(activity_type: str):
    return listing(_log().by_type(activity_type, page_request()), activity_to_dict)


@bp.get("/failed")
@require_role(ADMIN_ROLE)
def failed_activities():
    return listing(_log().failed(page_request()), activity_to_dict)


@bp.get("/successful")
@require_role(ADMIN_ROLE)
def successful_activities():
    return listing(_log().by_success(True, page_request()), activity_to_dict)


@bp.get("/date-range")
@require_role(ADMIN_ROLE)
def activities_in_range():
    errors: dict[str, str] = {}
    bounds = {}
    for name in ("start", "end"):
        raw = request.args.get(name)
        try:
            bounds[name] = parse_datetime(raw)
        except ValueError:
            errors[name] = "Must be an ISO-8601 date/time."
            continue
        if bounds[name] is None:
            errors[name] = "Required."
    if errors:
        raise ValidationError(errors)
    if bounds["start"] > bounds["end"]:
        raise ValidationError({"start": "Must not be after end."})
    return listing(_log().between(bounds["start"], bounds["end"], page_request()), activity_to_dict)


@bp.get("/ip/<ip_address>")
@require_role(ADMIN_ROLE)
def activities_by_ip(ip_address: str):
    return listing(_log().by_ip(ip_address, page_request()), activity_to_dict)


@bp.get("/session/<session_id>")
@require_role(ADMIN_ROLE)
def activities_by_session(session_id: str):
    return listing(_log().by_session(session_id, page_request()), activity_to_dict)


@bp.get("/search")
@require_role(ADMIN_ROLE)
def search_activities():
    term = (request.args.get("q") or "").strip()
    return listing(_log().search(term, page_request()), activity_to_dict)


@bp.get("/statistics")
@require_role(ADMIN_ROLE)
def activity_statistics():
    log = _log()
    total = log.count()
    failed = log.count_by_success(False)
    return jsonify(
        {
            "total_activities": total,
            "successful_activities": log.count_by_success(True),
            "failed_activities": failed,
            "failure_rate": failed / total if total else 0.0,
            "most_frequent_types": [{"activity_type": t, "count": c} for t, c in log.most_frequent_types(10)],
        }
    )


@bp.get("/frequent-types")
@require_role(ADMIN_ROLE)
def frequent_types():
    limit = int_arg("limit")
    return jsonify([{"activity_type": t, "count": c} for t, c in _log().most_frequent_types(limit)])
