from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from app.vims.api import int_arg
from app.vims.constants import ADMIN_ROLE
from app.vims.db import db_session
from app.vims.modules.reporting.service import ReportingService
from app.vims.rbac import require_role

bp = Blueprint("reporting_api", __name__)


def reporting_service() -> ReportingService:
    return ReportingService(
        db_session(), default_retention_days=current_app.config["ACTIVITY_RETENTION_DAYS"]
    )


@bp.get("/dashboard")
@bp.get("/dashboard/statistics")
@require_role(ADMIN_ROLE)
def dashboard():
    return jsonify(reporting_service().dashboard_statistics())


@bp.get("/reports/system")
@require_role(ADMIN_ROLE)
def system_report():
    return jsonify(reporting_service().system_overview_report())


@bp.get("/reports/users")
@require_role(ADMIN_ROLE)
def user_report():
    return jsonify(reporting_service().user_statistics_report())


@bp.get("/reports/activities")
@require_role(ADMIN_ROLE)
def activity_report():
    return jsonify(reporting_service().activity_report(int_arg("hours", 24)))


@bp.get("/system/health")
@require_role(ADMIN_ROLE)
def system_health():
    return jsonify(reporting_service().system_health())


@bp.get("/system/configuration/summary")
@require_role(ADMIN_ROLE)
def configuration_summary():
    return jsonify(reporting_service().configuration_summary())


@bp.post("/system/cleanup")
@require_role(ADMIN_ROLE)
def cleanup():
    result = reporting_service().cleanup_old_data(int_arg("days_to_keep"))
    return jsonify(result)
