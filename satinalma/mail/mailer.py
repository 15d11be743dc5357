from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List

from flask import current_app, render_template

from satinalma.infrastructure.repositories.mail_repository import EmailLogRepository, SmtpSettingsRepository
from satinalma.mail.transport import MailError, SmtpSettings, send_message, settings_from_config, settings_from_row
from satinalma.observability import observe_email


EMAIL_TEMPLATES = {
    "generic": "email/generic.html",
    "detail": "email/detail.html",
}

DEFERRED_OUTSIDE_BUSINESS_HOURS = "deferred_outside_business_hours"
SMTP_NOT_CONFIGURED = "smtp_not_configured"
MISSING_PAYLOAD = "missing_payload"

logger = logging.getLogger("satinalma.mail")


def render_email_template(name: str, **context: Any) -> str:
    template = EMAIL_TEMPLATES.get(str(name or "").strip()) or EMAIL_TEMPLATES["generic"]
    items = [_normalize_item(item) for item in (context.get("items") or []) if isinstance(item, dict)]
    context["items"] = items
    context["items_total"] = round(sum(item["total"] for item in items), 2)
    context["fields"] = [field for field in (context.get("fields") or []) if isinstance(field, dict)]
    context.setdefault("title", "")
    context.setdefault("body", "")
    context.setdefault("intro", None)
    context.setdefault("action_url", None)
    context.setdefault("action_text", None)
    context.setdefault("footer", None)
    return render_template(template, **context)


def _normalize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    quantity = _as_float(item.get("quantity"))
    unit_price = _as_float(item.get("unit_price"))
    total = item.get("total")
    return {
        "name": str(item.get("name") or "-"),
        "quantity": quantity,
        "unit_price": unit_price,
        "total": _as_float(total) if total is not None else round(quantity * unit_price, 2),
    }


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class EmailResult:
    ok: bool
    attempts: int
    error: str | None = None
    message_id: str | None = None
    log_id: int | None = None

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        if payload["error"] is None:
            payload.pop("error")
        return payload


class Mailer:
    def __init__(
        self,
        settings_repository: SmtpSettingsRepository | None = None,
        log_repository: EmailLogRepository | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings_repository = settings_repository or SmtpSettingsRepository()
        self.log_repository = log_repository or EmailLogRepository()
        self._sleep = sleep
        self._clock = clock

    def dispatch_email(
        self,
        db,
        *,
        to: str,
        subject: str,
        html: str,
        category: str = "general",
        smtp_key: str | None = None,
        max_attempts: int | None = None,
        tenant_id: str | None = None,
    ) -> EmailResult:
        attempts_allowed = max(1, int(max_attempts or current_app.config.get("MAIL_MAX_ATTEMPTS", 3) or 3))

        if self.outside_business_hours():
            return self._defer(db, to, subject, html, category, smtp_key, tenant_id, DEFERRED_OUTSIDE_BUSINESS_HOURS)

        settings = self.resolve_transport(db, smtp_key)
        if settings is None:
            return self._defer(db, to, subject, html, category, smtp_key, tenant_id, SMTP_NOT_CONFIGURED)

        ok, attempts, error, message_id = self._deliver(settings, to, subject, html, attempts_allowed)
        status = "sent" if ok else "failed"
        log_id = self.log_repository.log(
            db,
            to_address=to,
            subject=subject,
            category=category,
            status=status,
            attempts=attempts,
            last_error=error,
            message_id=message_id,
            payload_html=None if ok else html,
            smtp_key=settings.key,
            tenant_id=tenant_id,
        )
        db.commit()
        observe_email(status)
        log_method = logger.info if ok else logger.warning
        log_method(
            "email_sent" if ok else "email_failed",
            extra={
                "email_category": category,
                "email_attempts": attempts,
                "smtp_key": settings.key,
                "email_log_id": log_id,
                "email_error": error,
            },
        )
        return EmailResult(ok=ok, attempts=attempts, error=error, message_id=message_id, log_id=log_id)

    def process_deferred(self, db, *, batch_size: int | None = None) -> Dict[str, Any]:
        limit = max(1, int(batch_size or current_app.config.get("DEFERRED_EMAIL_BATCH_SIZE", 100) or 100))
        summary = {"ok": True, "processed": 0, "sent": 0, "failed": 0, "skipped": 0}

        max_attempts = max(1, int(current_app.config.get("MAIL_MAX_ATTEMPTS", 3) or 3))
        for row in self.log_repository.list_deferred(db, limit=limit):
            summary["processed"] += 1
            previous_attempts = int(row.get("attempts") or 0)
            if not row.get("to_address") or not row.get("subject") or not row.get("payload_html"):
                self.log_repository.mark_result(
                    db,
                    int(row["id"]),
                    status="failed",
                    attempts=previous_attempts,
                    last_error=MISSING_PAYLOAD,
                )
                summary["failed"] += 1
                observe_email("failed")
                continue

            settings = self.resolve_transport(db, row.get("smtp_key"))
            if settings is None:
                summary["skipped"] += 1
                continue

            ok, attempts, error, message_id = self._deliver(
                settings,
                row["to_address"],
                row["subject"],
                row["payload_html"],
                max_attempts,
            )
            status = "sent" if ok else "failed"
            self.log_repository.mark_result(
                db,
                int(row["id"]),
                status=status,
                attempts=previous_attempts + attempts,
                last_error=error,
                message_id=message_id,
            )
            summary[status] += 1
            observe_email(status)
        db.commit()
        logger.info("deferred_emails_processed", extra={"summary": summary})
        return summary

    def resolve_transport(self, db, smtp_key: str | None = None) -> SmtpSettings | None:
        row = self.settings_repository.resolve_active(db, smtp_key)
        if row:
            return settings_from_row(row)
        return settings_from_config()

    def outside_business_hours(self) -> bool:
        if not bool(current_app.config.get("MAIL_BUSINESS_HOURS_ONLY", False)):
            return False
        now = self._clock()
        start_hour = int(current_app.config.get("MAIL_BUSINESS_START_HOUR", 9))
        end_hour = int(current_app.config.get("MAIL_BUSINESS_END_HOUR", 18))
        if now.weekday() >= 5:
            return True
        return not (start_hour <= now.hour < end_hour)

    def _deliver(
        self,
        settings: SmtpSettings,
        to: str,
        subject: str,
        html: str,
        max_attempts: int,
    ) -> tuple[bool, int, str | None, str | None]:
        backoff_ms = max(0, int(current_app.config.get("MAIL_RETRY_BACKOFF_MS", 750) or 0))
        last_error: str | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                message_id = send_message(settings, to, subject, html)
                return True, attempt, None, message_id
            except MailError as exc:
                last_error = str(exc)[:500]
                if attempt < max_attempts and backoff_ms:
                    self._sleep(backoff_ms * attempt / 1000.0)
        return False, max_attempts, last_error, None

    def _defer(
        self,
        db,
        to: str,
        subject: str,
        html: str,
        category: str,
        smtp_key: str | None,
        tenant_id: str | None,
        reason: str,
    ) -> EmailResult:
        log_id = self.log_repository.log(
            db,
            to_address=to,
            subject=subject,
            category=category,
            status="deferred",
            attempts=0,
            last_error=reason,
            payload_html=html,
            smtp_key=smtp_key,
            tenant_id=tenant_id,
        )
        db.commit()
        observe_email("deferred")
        logger.info("email_deferred", extra={"email_category": category, "email_log_id": log_id, "reason": reason})
        return EmailResult(ok=False, attempts=0, error=reason, log_id=log_id)


def unique_recipients(addresses: Iterable[str | None]) -> List[str]:
    seen: List[str] = []
    for address in addresses:
        normalized = str(address or "").strip()
        if normalized and normalized.lower() not in {item.lower() for item in seen}:
            seen.append(normalized)
    return seen


_DEFAULT_MAILER = Mailer()


def get_mailer() -> Mailer:
    return _DEFAULT_MAILER


def dispatch_email(
    db,
    to: str,
    subject: str,
    html: str,
    category: str = "general",
    smtp_key: str | None = None,
    max_attempts: int | None = None,
    tenant_id: str | None = None,
) -> EmailResult:
    return _DEFAULT_MAILER.dispatch_email(
        db,
        to=to,
        subject=subject,
        html=html,
        category=category,
        smtp_key=smtp_key,
        max_attempts=max_attempts,
        tenant_id=tenant_id,
    )


def process_deferred_emails(db, batch_size: int | None = None) -> Dict[str, Any]:
    return _DEFAULT_MAILER.process_deferred(db, batch_size=batch_size)
