"""Application entry point for the approval workflow API."""

from __future__ import annotations

from datetime import UTC, datetime
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict
from uuid import uuid4

from flask import Flask, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from approval_workflow_api.access import Operation, require_permission
from approval_workflow_api.config import AppSettings, get_settings
from approval_workflow_api.db import session_scope
from approval_workflow_api.errors import ApprovalError
from approval_workflow_api.lifecycle import (
    Decision,
    create_request,
    get_request_by_id,
    list_all_requests,
    list_own_requests,
    list_pending_requests,
    parse_rejection_reason,
    resolve_request,
)
from approval_workflow_api.logging_config import configure_logging
from approval_workflow_api.security import Caller, resolve_caller

_LOGGING_CONFIGURED = False


def _envelope(status_code: int = 200, **fields: Any):
    body: Dict[str, Any] = {"success": status_code < 400}
    body.update({key: value for key, value in fields.items() if value is not None})
    response = jsonify(body)
    response.status_code = status_code
    return response


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _current_trace_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("trace_id")


def _register_error_handlers(flask_app: Flask, settings: AppSettings) -> None:
    """Translate failures into the JSON response envelope."""

    @flask_app.errorhandler(ApprovalError)
    def handle_approval_error(error: ApprovalError):  # type: ignore[override]
        fields: Dict[str, Any] = {"message": error.message}
        if error.status_code >= 500:
            fields["trace_id"] = _current_trace_id()
            if settings.is_development and error.__cause__ is not None:
                fields["error"] = str(error.__cause__)
        return _envelope(error.status_code, **fields)

    @flask_app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):  # type: ignore[override]
        status_code = error.code or 500
        if status_code == 404:
            message = "Route not found"
        elif status_code == 405:
            message = "Method not allowed"
        else:
            message = error.description or error.name
        return _envelope(status_code, message=message)

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        trace_id = _current_trace_id() or str(uuid4())
        structlog.get_logger().error("unhandled_error", trace_id=trace_id, exc_info=error)
        return _envelope(
            500,
            message="Internal server error",
            trace_id=trace_id,
            error=str(error) if settings.is_development else None,
        )


def _register_request_logging(flask_app: Flask) -> None:
    @flask_app.before_request
    def bind_trace():
        trace_id = str(uuid4())
        bind_contextvars(trace_id=trace_id)
        structlog.get_logger().info("http_request", method=request.method, path=request.path)

    @flask_app.teardown_request
    def unbind_trace(_error=None):
        unbind_contextvars("trace_id")


def _requires(operation: Operation, settings: AppSettings) -> Callable:
    """Authenticate the caller and check the role capability before the view runs."""

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapper(*args, **kwargs):
            caller = resolve_caller(
                request.headers,
                signing_secret=settings.identity_signing_secret,
                tolerance=settings.identity_tolerance_seconds,
            )
            bind_contextvars(user_id=caller.id)
            try:
                require_permission(caller, operation)
                return view(caller, *args, **kwargs)
            finally:
                unbind_contextvars("user_id")

        return wrapper

    return decorator


def _register_request_routes(flask_app: Flask, settings: AppSettings) -> None:
    base = f"{settings.api_prefix}/requests"

    @flask_app.route(base, methods=["POST"])
    @_requires(Operation.CREATE_REQUEST, settings)
    def create(caller: Caller):
        view = create_request(caller, _json_body())
        return _envelope(201, message="Request created successfully", data=view.to_payload())

    @flask_app.route(f"{base}/my-requests", methods=["GET"])
    @_requires(Operation.LIST_OWN, settings)
    def my_requests(caller: Caller):
        views = list_own_requests(caller)
        return _envelope(count=len(views), data=[view.to_payload() for view in views])

    @flask_app.route(f"{base}/pending", methods=["GET"])
    @_requires(Operation.LIST_PENDING, settings)
    def pending_requests(caller: Caller):
        views = list_pending_requests()
        return _envelope(count=len(views), data=[view.to_payload() for view in views])

    @flask_app.route(base, methods=["GET"])
    @_requires(Operation.LIST_ALL, settings)
    def all_requests(caller: Caller):
        views = list_all_requests()
        return _envelope(count=len(views), data=[view.to_payload() for view in views])

    @flask_app.route(f"{base}/<request_id>", methods=["GET"])
    @_requires(Operation.GET_REQUEST, settings)
    def request_detail(caller: Caller, request_id: str):
        view = get_request_by_id(caller, request_id)
        return _envelope(data=view.to_payload())

    @flask_app.route(f"{base}/<request_id>/approve", methods=["PUT"])
    @_requires(Operation.RESOLVE, settings)
    def approve(caller: Caller, request_id: str):
        view = resolve_request(caller, request_id, Decision.APPROVE)
        return _envelope(message="Request approved successfully", data=view.to_payload())

    @flask_app.route(f"{base}/<request_id>/reject", methods=["PUT"])
    @_requires(Operation.RESOLVE, settings)
    def reject(caller: Caller, request_id: str):
        reason = parse_rejection_reason(_json_body())
        view = resolve_request(caller, request_id, Decision.REJECT, reason)
        return _envelope(message="Request rejected successfully", data=view.to_payload())


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def _register_meta_routes(flask_app: Flask, settings: AppSettings) -> None:
    prefix = settings.api_prefix

    @flask_app.route("/", methods=["GET"])
    def index():
        return _envelope(
            message="Approval Workflow Management System API",
            version=flask_app.config.get("APP_VERSION", "unknown"),
            endpoints={
                "requests": f"{prefix}/requests",
                "health": f"{prefix}/health",
            },
        )

    @flask_app.route(f"{prefix}/health", methods=["GET"])
    def health():
        return _envelope(message="Server is running", timestamp=datetime.now(UTC).isoformat())

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        log = structlog.get_logger()
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")
        try:
            get_settings()
            health["config"] = "valid"
        except RuntimeError as exc:
            log.error("health_config_invalid", error=str(exc))
            health["config"] = "invalid"
            if settings.is_development:
                health["config_error"] = str(exc)
            health["ok"] = False
        try:
            with session_scope() as session:
                session.execute(text("SELECT 1"))
            health["db"] = "up"
        except Exception as exc:
            log.error("health_db_down", error=str(exc), exc_info=True)
            health["db"] = "down"
            if settings.is_development:
                health["db_error"] = str(exc)
            health["ok"] = False
        status = 200 if health["ok"] else 503
        return jsonify(health), status


def create_app() -> Flask:
    """Create and configure the Flask application."""

    global _LOGGING_CONFIGURED
    settings = get_settings()
    if not _LOGGING_CONFIGURED:
        configure_logging(settings.log_level)
        _LOGGING_CONFIGURED = True

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.logger.setLevel(settings.log_level)

    _register_error_handlers(flask_app, settings)
    _register_request_logging(flask_app)
    _register_request_routes(flask_app, settings)
    _register_meta_routes(flask_app, settings)

    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    application = create_app()
    application.run(host="0.0.0.0", port=5000, debug=get_settings().is_development)
