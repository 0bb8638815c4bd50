from flask import Blueprint, render_template, request

from app.vims.constants import ADMIN_ROLE, UserRole, UserStatus
from app.vims.db import db_session
from app.vims.modules.accounts.service import AccountService, parse_role, parse_status
from app.vims.modules.reporting.admin import reporting_service
from app.vims.pagination import PageRequest
from app.vims.rbac import require_role

bp = Blueprint("admin", __name__)


@bp.get("/")
@bp.get("/dashboard")
@require_role(ADMIN_ROLE)
def dashboard():
    svc = reporting_service()
    return render_template(
        "admin/dashboard.html",
        stats=svc.dashboard_statistics(),
        health=svc.system_health(),
    )


@bp.get("/users")
@require_role(ADMIN_ROLE)
def users():
    svc = AccountService(db_session())
    search = (request.args.get("q") or "").strip()
    role = parse_role(request.args.get("role"))
    status = parse_status(request.args.get("status"))
    try:
        page = PageRequest(page=max(int(request.args.get("page") or 1), 1))
    except ValueError:
        page = PageRequest()

    if search:
        result = svc.search(search, page)
    elif role:
        result = svc.list_by_role(role, page)
    elif status:
        result = svc.list_by_status(status, page)
    else:
        result = svc.list_active(page)

    return render_template(
        "admin/users.html",
        page=result,
        search=search,
        role=role.value if role else "",
        status=status.value if status else "",
        roles=list(UserRole),
        statuses=list(UserStatus),
    )
