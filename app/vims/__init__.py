import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, render_template, request, session
from dotenv import load_dotenv

from app.vims.config import load_config
from app.vims.db import init_db, teardown_db_session
from app.vims.errors import error_body, register_error_handlers
from app.vims.routes import bp as routes_bp
from app.vims.auth import bp as auth_bp, load_current_user
from app.vims.admin import bp as admin_bp
from app.vims.modules.accounts.admin import bp as users_api_bp
from app.vims.modules.activities.admin import bp as activities_api_bp
from app.vims.modules.system_config.admin import bp as config_api_bp
from app.vims.modules.reporting.admin import bp as reporting_api_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.logger.setLevel(app.config["LOG_LEVEL"])
    logging.getLogger("app.vims").setLevel(app.config["LOG_LEVEL"])

    # CSRF protection (minimal)
    from app.vims.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d %H:%M") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Allow safe auth endpoints to pass through (login/logout)
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                if request.path.startswith("/api/"):
                    return jsonify(error_body("VALIDATION_ERROR", "CSRF token missing or invalid.", 400)), 400
                return render_template("errors/error.html", message="CSRF token missing or invalid.", status=400), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(users_api_bp, url_prefix="/api/admin/users")
    app.register_blueprint(activities_api_bp, url_prefix="/api/admin/activities")
    app.register_blueprint(config_api_bp, url_prefix="/api/admin/config")
    app.register_blueprint(reporting_api_bp, url_prefix="/api/admin")

    def _load_user_wrapper():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    register_error_handlers(app)

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        if request.path.startswith("/api/"):
            return jsonify(error_body("UNAUTHORIZED_ACCESS", "Access denied", 403)), 403
        missing = getattr(g, "missing_role", None)
        if missing:
            app.logger.warning("Forbidden: missing_role=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_role=missing), 403

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
