"""
Small helpers shared by the /api/admin blueprints.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any

from flask import g, jsonify, request

from app.vims.errors import InvalidInputError
from app.vims.models import User
from app.vims.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Page, PageRequest


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return body


def attribution(field: str, body: dict[str, Any] | None = None) -> str:
    """
    Who performed the change: the `field` value from the body or query string,
    else the signed-in user's username. Caller-supplied values are not verified.
    """
    value = (body or {}).get(field) or request.args.get(field)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return _current_user().username


def int_arg(name: str, default: int | None = None) -> int | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidInputError(f"Query parameter '{name}' must be an integer") from e


def page_request() -> PageRequest | None:
    """None (full list) unless `page` is given; `size` defaults to 20, capped at 200."""
    page = int_arg("page")
    if page is None:
        return None
    size = min(int_arg("size", DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
    try:
        return PageRequest(page=page, size=size)
    except ValueError as e:
        raise InvalidInputError(str(e)) from e


def listing(result: list | Page, serialize: Callable[[Any], dict[str, Any]]):
    if isinstance(result, Page):
        return jsonify(result.to_dict(serialize))
    return jsonify([serialize(i) for i in result])
