"""
Error taxonomy and the JSON error boundary.

Every domain error maps to exactly one stable code and HTTP status. Anything
else reaching the boundary is logged with its traceback and returned as the
generic INTERNAL_SERVER_ERROR body.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import Flask, current_app, g, jsonify, render_template, request
from werkzeug.exceptions import HTTPException

from app.vims.utils import utcnow


class VimsError(Exception):
    code = "INTERNAL_SERVER_ERROR"
    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(VimsError):
    code = "NOT_FOUND"
    status = 404


class UserNotFoundError(NotFoundError):
    def __init__(self, value: Any, field: str = "id") -> None:
        super().__init__(f"User not found with {field}: {value}")


class ConfigurationNotFoundError(NotFoundError):
    def __init__(self, config_key: str) -> None:
        super().__init__(f"Configuration not found: {config_key}")
        self.config_key = config_key


class AlreadyExistsError(VimsError):
    code = "ALREADY_EXISTS"
    status = 409


class UserAlreadyExistsError(AlreadyExistsError):
    def __init__(self, field: str, value: str) -> None:
        super().__init__(f"User already exists with {field}: {value}")
        self.field = field


class ConfigurationAlreadyExistsError(AlreadyExistsError):
    def __init__(self, config_key: str) -> None:
        super().__init__(f"Configuration with key '{config_key}' already exists")


class InvalidInputError(VimsError):
    code = "VALIDATION_ERROR"
    status = 400


class ValidationError(InvalidInputError):
    def __init__(self, field_errors: dict[str, str], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.field_errors = field_errors


class ReadOnlyConfigurationError(InvalidInputError):
    def __init__(self, config_key: str, action: str = "update") -> None:
        super().__init__(f"Cannot {action} read-only configuration: {config_key}")


class ConfigurationFormatError(InvalidInputError):
    def __init__(self, config_key: str, value: str, expected: str) -> None:
        super().__init__(f"Configuration {config_key} value {value!r} is not a valid {expected}")


class AccountLockedError(VimsError):
    code = "ACCOUNT_LOCKED"
    status = 423

    def __init__(self, message: str, locked_until: datetime | None = None) -> None:
        super().__init__(message)
        self.locked_until = locked_until

    def is_locked(self) -> bool:
        return self.locked_until is not None and self.locked_until > utcnow()


class UnauthorizedAccessError(VimsError):
    code = "UNAUTHORIZED_ACCESS"
    status = 403


class StorageError(VimsError):
    code = "INTERNAL_SERVER_ERROR"
    status = 500


_HTTP_CODES = {
    400: InvalidInputError.code,
    401: "INVALID_CREDENTIALS",
    403: UnauthorizedAccessError.code,
    404: NotFoundError.code,
    409: AlreadyExistsError.code,
    423: AccountLockedError.code,
    429: "TOO_MANY_REQUESTS",
}


def error_body(code: str, message: str, status: int, field_errors: dict[str, str] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {
        "error": code,
        "message": message,
        "status": status,
        "timestamp": utcnow().isoformat(),
    }
    if field_errors is not None:
        body["fieldErrors"] = field_errors
    return body


def _wants_json() -> bool:
    return request.path.startswith("/api/") or request.is_json


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(VimsError)
    def _domain_error(e: VimsError):  # type: ignore[no-redef]
        if isinstance(e, StorageError):
            current_app.logger.error("Storage error (request_id=%s): %s", getattr(g, "request_id", None), e.message)
            message = "An unexpected error occurred"
        else:
            current_app.logger.warning("%s: %s", e.code, e.message)
            message = e.message
        field_errors = getattr(e, "field_errors", None)
        if _wants_json():
            return jsonify(error_body(e.code, message, e.status, field_errors)), e.status
        template = "errors/404.html" if e.status == 404 else "errors/error.html"
        return render_template(template, message=message, status=e.status), e.status

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        if not request.path.startswith("/api/"):
            return e
        status = e.code or 500
        code = _HTTP_CODES.get(status, "HTTP_ERROR" if status < 500 else StorageError.code)
        return jsonify(error_body(code, e.description or e.name, status)), status

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):  # type: ignore[no-redef]
        current_app.logger.exception("Unhandled error (request_id=%s)", getattr(g, "request_id", None))
        if _wants_json():
            return jsonify(error_body(StorageError.code, "An unexpected error occurred", 500)), 500
        return render_template("errors/500.html"), 500
