from __future__ import annotations

from flask import Blueprint, jsonify, request

from satinalma.application.audit_service import AuditService, record_audit
from satinalma.application.jobs import run_job
from satinalma.application.report_service import ReportService
from satinalma.application.smtp_settings_service import SmtpSettingsService
from satinalma.db import get_db
from satinalma.policies import require_permission
from satinalma.routes.common import json_payload, parse_int_arg, parse_optional_int, tenant_id
from satinalma.tenant import current_user_id


admin_bp = Blueprint("admin", __name__, url_prefix="/api")

_SMTP_SETTINGS_SERVICE = SmtpSettingsService()
_REPORT_SERVICE = ReportService()
_AUDIT_SERVICE = AuditService()

# url path -> scheduler job name
JOB_ROUTES = {
    "email/process-deferred": "process_deferred_emails",
    "contracts/remind-expiry": "contract_expiry_reminders",
    "evaluations/remind": "evaluation_reminders",
    "meetings/remind": "meeting_reminders",
}


@admin_bp.route("/settings/smtp", methods=["GET", "POST"])
def smtp_settings_api():
    require_permission("settings:edit")
    db = get_db()
    if request.method == "POST":
        result = _SMTP_SETTINGS_SERVICE.create(db, payload=json_payload())
        _audit_smtp_change(db, "CREATE", result.payload.get("id"), new_data=result.payload)
    else:
        result = _SMTP_SETTINGS_SERVICE.list(db)
    return jsonify(result.payload), result.status_code


@admin_bp.route("/settings/smtp/<int:setting_id>", methods=["PUT", "DELETE"])
def smtp_setting_detail(setting_id: int):
    require_permission("settings:edit")
    db = get_db()
    if request.method == "DELETE":
        result = _SMTP_SETTINGS_SERVICE.delete(db, setting_id=setting_id)
        _audit_smtp_change(db, "DELETE", setting_id)
    else:
        result = _SMTP_SETTINGS_SERVICE.update(db, setting_id=setting_id, payload=json_payload())
        _audit_smtp_change(db, "UPDATE", setting_id, new_data=result.payload)
    return jsonify(result.payload), result.status_code


def _audit_smtp_change(db, action: str, setting_id, new_data: dict | None = None) -> None:
    # payloads are already masked by the service
    record_audit(
        db,
        tenant_id=tenant_id(),
        action=action,
        entity_type="Settings",
        entity_id=setting_id,
        user_id=current_user_id(),
        new_data=new_data,
    )


@admin_bp.route("/jobs/<path:job_path>", methods=["POST"])
def run_job_api(job_path: str):
    require_permission("jobs:run")
    name = JOB_ROUTES.get(job_path.strip("/"), job_path)
    summary = run_job(get_db(), name, tenant_id=tenant_id())
    return jsonify(summary), 200


@admin_bp.route("/reports/dashboard", methods=["GET"])
def dashboard_report():
    require_permission("report:read")
    result = _REPORT_SERVICE.dashboard(get_db(), tenant_id=tenant_id())
    return jsonify(result.payload), result.status_code


@admin_bp.route("/reports/spend-by-supplier", methods=["GET"])
def spend_by_supplier_report():
    require_permission("report:read")
    result = _REPORT_SERVICE.spend_by_supplier(
        get_db(),
        tenant_id=tenant_id(),
        date_from=request.args.get("date_from"),
        date_to=request.args.get("date_to"),
    )
    return jsonify(result.payload), result.status_code


@admin_bp.route("/audit", methods=["GET"])
def audit_logs():
    require_permission("audit:read")
    filters = {
        "entity_type": request.args.get("entity_type"),
        "entity_id": request.args.get("entity_id"),
        "user_id": parse_optional_int(request.args.get("user_id")),
        "action": (request.args.get("action") or "").strip().upper() or None,
    }
    result = _AUDIT_SERVICE.list(
        get_db(),
        tenant_id=tenant_id(),
        filters=filters,
        page=parse_int_arg(request.args.get("page"), default=1, min_value=1, max_value=1_000_000),
        page_size=parse_int_arg(request.args.get("limit"), default=50, min_value=1, max_value=200),
    )
    return jsonify(result.payload), result.status_code
