import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from satinalma.config import Config
from satinalma.db import close_db, init_db
from satinalma.db_migrations import register_db_cli
from satinalma.observability import (
    configure_json_logging,
    ensure_request_id,
    mark_request_start,
    metrics_snapshot,
    observe_response,
)
from satinalma.security import apply_security_headers, enforce_rate_limit


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class() if isinstance(config_class, type) else config_class)
    configure_json_logging(app)

    _ensure_database_dir(app)
    _register_error_handlers(app)
    _register_tenant(app)
    _register_security(app)
    _register_auth(app)
    _register_blueprints(app)
    _register_health(app)
    register_db_cli(app)
    _maybe_init_schema(app)

    _register_scheduler(app)
    app.teardown_appcontext(close_db)
    return app


def _ensure_database_dir(app: Flask) -> None:
    database_dir = app.config.get("DATABASE_DIR")
    if database_dir:
        os.makedirs(database_dir, exist_ok=True)


def _maybe_init_schema(app: Flask) -> None:
    auto_init = bool(app.config.get("DB_AUTO_INIT", False))
    if app.testing:
        # tests build their own throwaway schema
        auto_init = True
    if not auto_init:
        return

    flask_env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if not app.testing and flask_env != "development":
        app.logger.warning("DB_AUTO_INIT development dışında yok sayıldı.")
        return

    with app.app_context():
        init_db()


def _register_blueprints(app: Flask) -> None:
    from satinalma.routes.admin_routes import admin_bp
    from satinalma.routes.approval_routes import approvals_bp
    from satinalma.routes.contract_routes import contracts_bp
    from satinalma.routes.delivery_routes import deliveries_bp
    from satinalma.routes.evaluation_routes import evaluations_bp
    from satinalma.routes.meeting_routes import meetings_bp
    from satinalma.routes.notification_routes import notifications_bp
    from satinalma.routes.order_routes import orders_bp
    from satinalma.routes.request_routes import requests_bp
    from satinalma.routes.rfq_routes import rfqs_bp
    from satinalma.routes.supplier_routes import suppliers_bp

    for blueprint in (
        requests_bp,
        rfqs_bp,
        orders_bp,
        deliveries_bp,
        suppliers_bp,
        evaluations_bp,
        contracts_bp,
        meetings_bp,
        notifications_bp,
        approvals_bp,
        admin_bp,
    ):
        app.register_blueprint(blueprint)


def _register_auth(app: Flask) -> None:
    from satinalma.auth import register_auth

    register_auth(app)


def _register_scheduler(app: Flask) -> None:
    from satinalma.scheduler import start_job_scheduler

    start_job_scheduler(app)


def _register_error_handlers(app: Flask) -> None:
    from satinalma.errors import AppError, SystemError

    @app.before_request
    def _ensure_request_id() -> None:
        ensure_request_id()
        mark_request_start()

    @app.after_request
    def _append_request_id(response):
        response.headers["X-Request-Id"] = ensure_request_id()
        response = observe_response(response)
        return apply_security_headers(response)

    def _log_error(error: AppError, request_id: str) -> None:
        log_method = app.logger.error if error.critical else app.logger.warning
        log_method(
            "application_error",
            extra={
                "request_id": request_id,
                "error_code": error.code,
                "http_status": error.http_status,
                "message_key": error.message_key,
                "details": error.details,
                "log_context": error.log_context,
                "request_path": request.path,
                "http_method": request.method,
            },
            exc_info=error.critical,
        )

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        request_id = ensure_request_id()
        _log_error(exc, request_id)
        return jsonify(exc.to_response_payload(request_id)), exc.http_status

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc

        request_id = ensure_request_id()
        mapped = SystemError(code="server_error", critical=True, log_context=str(exc))
        app.logger.exception(
            "unexpected_exception",
            extra={
                "request_id": request_id,
                "error_code": mapped.code,
                "request_path": request.path,
                "http_method": request.method,
            },
        )
        return jsonify(mapped.to_response_payload(request_id)), mapped.http_status


def _register_security(app: Flask) -> None:
    @app.before_request
    def _rate_limit_guard():
        return enforce_rate_limit()


def _register_tenant(app: Flask) -> None:
    from satinalma.routes.common import load_request_identity

    @app.before_request
    def load_tenant() -> None:
        load_request_identity()


def _register_health(app: Flask) -> None:
    @app.route("/health")
    def health():
        from satinalma.application.notification_service import get_notification_email_queue
        from satinalma.db import get_db
        from satinalma.infrastructure.repositories.mail_repository import EmailLogRepository

        db_path = app.config.get("DB_PATH") or "unknown"
        backend = "postgres" if str(db_path).startswith("postgres") else "sqlite"
        payload = {
            "status": "ok",
            "db": backend,
            "env": os.environ.get("FLASK_ENV", "development"),
            "metrics": metrics_snapshot(),
        }
        email_queue = {"notification_queue_depth": get_notification_email_queue().depth()}
        try:
            counts = EmailLogRepository().count_by_status(get_db())
            email_queue["deferred"] = counts.get("deferred", 0)
            email_queue["failed"] = counts.get("failed", 0)
        except Exception:  # noqa: BLE001
            app.logger.exception("health_email_queue_failed")
            payload["status"] = "degraded"
        payload["email_queue"] = email_queue
        return payload, 200
