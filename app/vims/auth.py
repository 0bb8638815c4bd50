from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, session, url_for
from sqlalchemy.exc import SQLAlchemyError

from app.vims import constants as C
from app.vims.audit import client_ip
from app.vims.db import db_session, unit_of_work
from app.vims.errors import AccountLockedError, ConfigurationFormatError, error_body
from app.vims.models import User
from app.vims.modules.accounts.service import AccountService, user_to_dict
from app.vims.modules.activities.service import ActivityLog
from app.vims.modules.system_config.service import ConfigurationService
from app.vims.utils import utcnow

bp = Blueprint("auth", __name__)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _attempts() -> dict[str, list[datetime]]:
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    cutoff = utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    attempts = _attempts()
    recent = [t for t in attempts.get(ip, ()) if t > cutoff]
    if recent:
        attempts[ip] = recent
    else:
        attempts.pop(ip, None)
    return len(recent) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _attempts()[ip].append(utcnow())


def lockout_policy(configs: ConfigurationService) -> tuple[int, int]:
    """(max_attempts, lockout_minutes); configuration entries override the process defaults."""
    max_attempts = current_app.config["MAX_LOGIN_ATTEMPTS"]
    minutes = current_app.config["LOCKOUT_MINUTES"]
    try:
        max_attempts = configs.get_int(C.CFG_MAX_LOGIN_ATTEMPTS, max_attempts)
        minutes = configs.get_int(C.CFG_LOCKOUT_MINUTES, minutes)
    except ConfigurationFormatError as e:
        current_app.logger.warning("Ignoring malformed lockout setting: %s", e.message)
    return max_attempts, minutes


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.can_login():
            session.pop("user_id", None)
            session.pop("sid", None)
            g.current_user = None
            return
        g.current_user = user
    except SQLAlchemyError as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    wants_json = request.is_json
    data = (request.get_json(silent=True) or {}) if wants_json else request.form
    identifier = (data.get("username") or "").strip()
    password = data.get("password") or ""
    nxt = (data.get("next") or "").strip()
    ip = client_ip() or "unknown"

    def _reject(code: str, message: str, status: int):
        if wants_json:
            return jsonify(error_body(code, message, status)), status
        flash(message, "danger")
        return redirect(url_for("auth.login_get"))

    if _check_rate_limit(ip):
        return _reject("TOO_MANY_REQUESTS", "Too many login attempts. Please wait 5 minutes.", 429)
    _record_attempt(ip)

    s = db_session()
    configs = ConfigurationService(s)
    max_attempts, lockout_minutes = lockout_policy(configs)
    session["sid"] = uuid.uuid4().hex
    try:
        user = AccountService(s).authenticate(
            identifier, password, max_attempts=max_attempts, lockout_minutes=lockout_minutes
        )
    except AccountLockedError as e:
        session.pop("sid", None)
        if wants_json:
            raise
        return render_template("auth/login.html", next=nxt, locked_until=e.locked_until), 423

    if not user:
        session.pop("sid", None)
        current_app.logger.info("Login failed for %s (request_id=%s)", identifier, getattr(g, "request_id", None))
        return _reject("INVALID_CREDENTIALS", "Invalid credentials.", 401)

    session["user_id"] = user.id
    _attempts().pop(ip, None)
    if wants_json:
        return jsonify({"user": user_to_dict(user), "csrf_token": session.get("csrf_token")})
    # Optional "next" redirect (only allow local paths to avoid open redirects).
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    return redirect(url_for("admin.dashboard"))


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        with unit_of_work(s):
            ActivityLog(s).record_success(user, C.LOGOUT, "User logged out")
    session.pop("user_id", None)
    session.pop("sid", None)
    return redirect(url_for("auth.login_get"))
