from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from flask import current_app

from satinalma.application.contract_service import ContractService
from satinalma.application.evaluation_service import EvaluationService
from satinalma.application.meeting_service import MeetingService
from satinalma.errors import NotFoundError
from satinalma.mail import process_deferred_emails
from satinalma.observability import observe_job_run


logger = logging.getLogger("satinalma.jobs")

JobRunner = Callable[..., Dict[str, Any]]


def tenant_ids_with(db, table: str) -> List[str]:
    rows = db.execute(f"SELECT DISTINCT tenant_id FROM {table} WHERE tenant_id IS NOT NULL ORDER BY tenant_id").fetchall()
    return [str(row["tenant_id"]) for row in rows]


def _scoped_tenants(db, table: str, tenant_id: str | None) -> List[str]:
    return [tenant_id] if tenant_id else tenant_ids_with(db, table)


def process_deferred_email_job(db, tenant_id: str | None = None) -> Dict[str, Any]:
    # deferred rows are drained installation-wide; SMTP transports are shared
    batch_size = int(current_app.config.get("DEFERRED_EMAIL_BATCH_SIZE", 100) or 100)
    return process_deferred_emails(db, batch_size=batch_size)


def contract_expiry_job(db, tenant_id: str | None = None) -> Dict[str, Any]:
    service = ContractService()
    count = 0
    for scoped_tenant in _scoped_tenants(db, "contracts", tenant_id):
        count += service.remind_expiring(db, tenant_id=scoped_tenant)["count"]
    return {"ok": True, "count": count}


def evaluation_reminder_job(db, tenant_id: str | None = None) -> Dict[str, Any]:
    service = EvaluationService()
    sent = 0
    errors = 0
    for scoped_tenant in _scoped_tenants(db, "orders", tenant_id):
        summary = service.remind_pending(db, tenant_id=scoped_tenant)
        sent += summary["sent"]
        errors += summary["errors"]
    return {"ok": True, "sent": sent, "errors": errors}


def meeting_reminder_job(db, tenant_id: str | None = None) -> Dict[str, Any]:
    service = MeetingService()
    sent = 0
    errors = 0
    for scoped_tenant in _scoped_tenants(db, "meetings", tenant_id):
        summary = service.send_reminders(db, tenant_id=scoped_tenant)
        sent += summary["sent"]
        errors += summary["errors"]
    return {"ok": True, "sent": sent, "errors": errors}


JOBS: Dict[str, JobRunner] = {
    "process_deferred_emails": process_deferred_email_job,
    "contract_expiry_reminders": contract_expiry_job,
    "evaluation_reminders": evaluation_reminder_job,
    "meeting_reminders": meeting_reminder_job,
}


def run_job(db, name: str, tenant_id: str | None = None) -> Dict[str, Any]:
    runner = JOBS.get(name)
    if runner is None:
        raise NotFoundError(code="not_found", details={"job": name})
    try:
        summary = runner(db, tenant_id=tenant_id)
    except Exception:
        observe_job_run(name, "failed")
        raise
    observe_job_run(name, "ok")
    logger.info("job_finished", extra={"job": name, "tenant_id": tenant_id, "summary": summary})
    return summary
