from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.vims.api import attribution, json_body, listing, page_request
from app.vims.constants import ADMIN_ROLE
from app.vims.db import db_session
from app.vims.errors import InvalidInputError
from app.vims.modules.system_config.service import ConfigurationService, config_to_dict, parse_config_type
from app.vims.rbac import require_role

bp = Blueprint("config_api", __name__)


def _service() -> ConfigurationService:
    return ConfigurationService(db_session())


def _entries(result):
    return listing(result, config_to_dict)


# ---------- Curated lists ----------
@bp.get("")
@require_role(ADMIN_ROLE)
def list_configurations():
    return _entries(_service().list_all(page_request()))


@bp.get("/type/<config_type>")
@require_role(ADMIN_ROLE)
def configurations_by_type(config_type: str):
    parsed = parse_config_type(config_type)
    if parsed is None:
        raise InvalidInputError(f"Invalid configuration type: {config_type}")
    return _entries(_service().by_type(parsed, page_request()))


@bp.get("/critical")
@require_role(ADMIN_ROLE)
def critical_configurations():
    return _entries(_service().critical_entries())


@bp.get("/email")
@require_role(ADMIN_ROLE)
def email_configurations():
    return _entries(_service().email_entries())


@bp.get("/security")
@require_role(ADMIN_ROLE)
def security_configurations():
    return _entries(_service().security_entries())


@bp.get("/database")
@require_role(ADMIN_ROLE)
def database_configurations():
    return _entries(_service().database_entries())


@bp.get("/read-only")
@require_role(ADMIN_ROLE)
def read_only_configurations():
    return _entries(_service().read_only())


@bp.get("/encrypted")
@require_role(ADMIN_ROLE)
def encrypted_configurations():
    return _entries(_service().encrypted())


@bp.get("/needing-encryption")
@require_role(ADMIN_ROLE)
def configurations_needing_encryption():
    return _entries(_service().needing_encryption())


@bp.get("/search/key")
@require_role(ADMIN_ROLE)
def search_by_key():
    return _entries(_service().search_by_key(request.args.get("pattern") or "", page_request()))


@bp.get("/search/description")
@require_role(ADMIN_ROLE)
def search_by_description():
    return _entries(_service().search_by_description(request.args.get("q") or "", page_request()))


@bp.get("/statistics")
@require_role(ADMIN_ROLE)
def configuration_statistics():
    return jsonify(_service().statistics())


# ---------- Single entry ----------
@bp.post("")
@require_role(ADMIN_ROLE)
def save_configuration():
    body = json_body()
    entry, created = _service().upsert(body, updated_by=attribution("updated_by", body))
    return jsonify(config_to_dict(entry)), 201 if created else 200


@bp.get("/<key>")
@require_role(ADMIN_ROLE)
def get_configuration(key: str):
    return jsonify(config_to_dict(_service().get(key)))


@bp.delete("/<key>")
@require_role(ADMIN_ROLE)
def delete_configuration(key: str):
    _service().delete(key, deleted_by=attribution("deleted_by", json_body()))
    return "", 204


@bp.put("/<key>/value")
@require_role(ADMIN_ROLE)
def update_configuration_value(key: str):
    body = json_body()
    value = body.get("config_value")
    if value is None:
        value = request.args.get("config_value")
    entry = _service().update_value(key, value, updated_by=attribution("updated_by", body))
    return jsonify(config_to_dict(entry))


@bp.get("/<key>/exists")
@require_role(ADMIN_ROLE)
def configuration_exists(key: str):
    return jsonify({"config_key": key, "exists": _service().exists(key)})


@bp.get("/<key>/value")
@require_role(ADMIN_ROLE)
def configuration_value(key: str):
    default = request.args.get("default")
    svc = _service()
    value = svc.get_value(key) if default is None else svc.get_value(key, default)
    return jsonify({"config_key": key, "value": value})


@bp.get("/<key>/boolean")
@require_role(ADMIN_ROLE)
def configuration_boolean(key: str):
    raw = request.args.get("default")
    svc = _service()
    if raw is None:
        value = svc.get_bool(key)
    else:
        if raw.strip().lower() not in ("true", "false"):
            raise InvalidInputError("Query parameter 'default' must be true or false")
        value = svc.get_bool(key, raw.strip().lower() == "true")
    return jsonify({"config_key": key, "value": value})


@bp.get("/<key>/integer")
@require_role(ADMIN_ROLE)
def configuration_integer(key: str):
    raw = request.args.get("default")
    svc = _service()
    if raw is None:
        value = svc.get_int(key)
    else:
        try:
            default = int(raw)
        except ValueError as e:
            raise InvalidInputError("Query parameter 'default' must be an integer") from e
        value = svc.get_int(key, default)
    return jsonify({"config_key": key, "value": value})
