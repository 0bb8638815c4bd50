from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.vims.api import attribution, int_arg, json_body, listing, page_request
from app.vims.constants import ADMIN_ROLE, UserRole, UserStatus
from app.vims.db import db_session
from app.vims.errors import InvalidInputError, ValidationError
from app.vims.modules.accounts.service import AccountService, parse_role, parse_status, user_to_dict
from app.vims.rbac import require_role

bp = Blueprint("users_api", __name__)


def _service() -> AccountService:
    return AccountService(db_session())


def _role_or_400(raw: str) -> UserRole:
    role = parse_role(raw)
    if role is None:
        raise InvalidInputError(f"Invalid role: {raw}")
    return role


def _status_or_400(raw: str) -> UserStatus:
    status = parse_status(raw)
    if status is None:
        raise InvalidInputError(f"Invalid status: {raw}")
    return status


# ---------- Create / Read ----------
@bp.post("")
@require_role(ADMIN_ROLE)
def create_user():
    body = json_body()
    user = _service().create(body, created_by=attribution("created_by", body))
    return jsonify(user_to_dict(user)), 201


@bp.get("")
@require_role(ADMIN_ROLE)
def list_users():
    return listing(_service().list_active(page_request()), user_to_dict)


@bp.get("/<int:user_id>")
@require_role(ADMIN_ROLE)
def get_user(user_id: int):
    return jsonify(user_to_dict(_service().get_by_id(user_id)))


@bp.get("/username/<username>")
@require_role(ADMIN_ROLE)
def get_user_by_username(username: str):
    return jsonify(user_to_dict(_service().get_by_username(username)))


@bp.get("/search")
@require_role(ADMIN_ROLE)
def search_users():
    term = (request.args.get("q") or "").strip()
    return listing(_service().search(term, page_request()), user_to_dict)


@bp.get("/role/<role>")
@require_role(ADMIN_ROLE)
def users_by_role(role: str):
    return listing(_service().list_by_role(_role_or_400(role), page_request()), user_to_dict)


@bp.get("/status/<status>")
@require_role(ADMIN_ROLE)
def users_by_status(status: str):
    return listing(_service().list_by_status(_status_or_400(status), page_request()), user_to_dict)


@bp.get("/locked")
@require_role(ADMIN_ROLE)
def locked_users():
    return jsonify([user_to_dict(u) for u in _service().list_locked()])


@bp.get("/statistics")
@require_role(ADMIN_ROLE)
def user_statistics():
    svc = _service()
    return jsonify(
        {
            "total_users": svc.count(),
            "users_by_role": {r.value: svc.count_by_role(r) for r in UserRole},
            "users_by_status": {st.value: svc.count_by_status(st) for st in UserStatus},
            "locked_users": len(svc.list_locked()),
            "users_with_failed_logins": len(svc.list_with_failed_logins()),
        }
    )


# ---------- Mutations ----------
@bp.put("/<int:user_id>")
@require_role(ADMIN_ROLE)
def update_user(user_id: int):
    body = json_body()
    user = _service().update(user_id, body, updated_by=attribution("updated_by", body))
    return jsonify(user_to_dict(user))


@bp.post("/<int:user_id>/block")
@require_role(ADMIN_ROLE)
def block_user(user_id: int):
    user = _service().block(user_id, blocked_by=attribution("blocked_by", json_body()))
    return jsonify(user_to_dict(user))


@bp.post("/<int:user_id>/unblock")
@require_role(ADMIN_ROLE)
def unblock_user(user_id: int):
    user = _service().unblock(user_id, unblocked_by=attribution("unblocked_by", json_body()))
    return jsonify(user_to_dict(user))


@bp.delete("/<int:user_id>")
@require_role(ADMIN_ROLE)
def delete_user(user_id: int):
    _service().soft_delete(user_id, deleted_by=attribution("deleted_by", json_body()))
    return "", 204


@bp.post("/<int:user_id>/reset-password")
@require_role(ADMIN_ROLE)
def reset_password(user_id: int):
    body = json_body()
    new_password = body.get("new_password") or request.args.get("new_password") or ""
    user = _service().reset_password(user_id, new_password, reset_by=attribution("reset_by", body))
    return jsonify(user_to_dict(user))


@bp.post("/<int:user_id>/lock")
@require_role(ADMIN_ROLE)
def lock_user(user_id: int):
    body = json_body()
    minutes = body.get("minutes")
    if minutes is None:
        minutes = int_arg("minutes")
    if minutes is None:
        raise ValidationError({"minutes": "Lock duration in minutes is required."})
    try:
        minutes = int(minutes)
    except (TypeError, ValueError) as e:
        raise ValidationError({"minutes": "Lock duration must be an integer."}) from e
    user = _service().lock_account(user_id, minutes, locked_by=attribution("locked_by", body))
    return jsonify(user_to_dict(user))


@bp.post("/<int:user_id>/unlock")
@require_role(ADMIN_ROLE)
def unlock_user(user_id: int):
    user = _service().unlock_account(user_id, unlocked_by=attribution("unlocked_by", json_body()))
    return jsonify(user_to_dict(user))
