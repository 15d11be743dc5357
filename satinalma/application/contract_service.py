from __future__ import annotations

import logging
import time
from datetime import date, timedelta
from typing import Any, Dict, List

from flask import current_app

from satinalma.application.audit_service import compute_changes, record_audit
from satinalma.application.messaging import paragraph, public_url, send_template_email
from satinalma.application.notification_service import NotificationService
from satinalma.db import to_db_timestamp, utc_now
from satinalma.domain.contracts import Actor, ContractInput, ListQuery, ServiceOutput
from satinalma.errors import ConflictError, NotFoundError, UserActionError, ValidationError
from satinalma.infrastructure.repositories.contract_repository import ContractRepository
from satinalma.infrastructure.repositories.order_repository import OrderRepository
from satinalma.infrastructure.repositories.user_repository import UserRepository
from satinalma.procurement.validators import clean_text, parse_date, parse_float, parse_positive_int
from satinalma.ui_strings import status_keys_for_group, status_label


logger = logging.getLogger("satinalma.contracts")

CONTRACT_STATUSES = set(status_keys_for_group("contract"))
_EDITABLE_TEXT_FIELDS = ("title", "type", "notes", "currency")


def generate_contract_number(today: date | None = None) -> str:
    year = (today or date.today()).year
    return f"S-{year}-{int(time.time() * 1000)}"


def normalize_parties(value: Any) -> str | None:
    if isinstance(value, (list, tuple)):
        return clean_text(", ".join(str(party).strip() for party in value if str(party or "").strip()))
    return clean_text(value)


def reminder_days(raw: Any) -> List[int]:
    days = set()
    for part in str(raw or "").split(","):
        value = parse_positive_int(part.strip())
        if value:
            days.add(value)
    return sorted(days, reverse=True)


def reminder_window(days_left: int, windows: List[int]) -> int | None:
    """Returns the narrowest configured window that still holds `days_left`."""
    fitting = [days for days in windows if days_left <= days]
    return min(fitting) if fitting else None


def contract_input_from_payload(payload: Dict[str, Any]) -> tuple[ContractInput | None, List[str]]:
    errors: List[str] = []
    title = clean_text(payload.get("title"))
    contract_type = clean_text(payload.get("type"))
    parties = normalize_parties(payload.get("parties"))
    status = clean_text(payload.get("status")) or "draft"
    start_date = parse_date(payload.get("start_date"))
    end_raw = clean_text(payload.get("end_date"))
    end_date = parse_date(end_raw)

    if not title:
        errors.append("title_required")
    if not contract_type:
        errors.append("type_required")
    if not parties:
        errors.append("parties_required")
    if start_date is None:
        errors.append("invalid_startDate")
    if end_raw and end_date is None:
        errors.append("invalid_endDate")
    if status not in CONTRACT_STATUSES:
        errors.append("status_required")
    if start_date and end_date and start_date > end_date:
        errors.append("start_after_end")
    if errors:
        return None, errors

    value = parse_float(payload.get("value"))
    return (
        ContractInput(
            title=title,
            type=contract_type,
            parties=parties,
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat() if end_date else None,
            status=status,
            number=clean_text(payload.get("number")),
            value=value,
            currency=clean_text(payload.get("currency")) or "TRY",
            order_id=parse_positive_int(payload.get("order_id")),
            responsible_user_id=parse_positive_int(payload.get("responsible_user_id")),
            notes=clean_text(payload.get("notes")),
        ),
        [],
    )


class ContractService:
    def __init__(self, notifications: NotificationService | None = None) -> None:
        self.notifications = notifications or NotificationService()

    def list(self, db, *, tenant_id: str, query: ListQuery) -> ServiceOutput:
        page = ContractRepository(tenant_id=tenant_id).list_page(db, query, today=utc_now().date())
        return ServiceOutput(payload=page.as_payload())

    def get(self, db, *, tenant_id: str, contract_id: int) -> ServiceOutput:
        contract = self._load(db, tenant_id, contract_id)
        contract["status_label"] = status_label("contract", contract.get("status"))
        return ServiceOutput(payload=contract)

    def create(self, db, *, actor: Actor, payload: Dict[str, Any]) -> ServiceOutput:
        data, errors = contract_input_from_payload(payload)
        if errors:
            raise UserActionError(code="invalid_payload", details=errors)

        repository = ContractRepository(tenant_id=actor.tenant_id)
        order = None
        if data.order_id:
            order = OrderRepository(tenant_id=actor.tenant_id).get_with_supplier(db, data.order_id)
            if not order:
                raise NotFoundError(code="order_not_found")
            duplicate = repository.find_overlapping(
                db,
                order_id=data.order_id,
                title=data.title,
                start_date=data.start_date,
                end_date=data.end_date,
            )
            if duplicate:
                raise ConflictError(
                    code="duplicate_contract",
                    details={"id": duplicate["id"], "number": duplicate["number"]},
                )

        number = data.number or generate_contract_number()
        if repository.find_by_number(db, number):
            raise ConflictError(code="duplicate_number", details={"number": number})

        contract_id = repository.create(db, data=data, number=number)
        db.commit()

        users = UserRepository(tenant_id=actor.tenant_id)
        recipients = users.emails_for(
            db,
            [data.responsible_user_id, (order or {}).get("request_owner_user_id")],
        )
        recipients.append((order or {}).get("request_unit_email"))
        fields = [
            {"label": "Sözleşme No", "value": number},
            {"label": "Başlık", "value": data.title},
            {"label": "Başlangıç", "value": data.start_date},
        ]
        if data.end_date:
            fields.append({"label": "Bitiş", "value": data.end_date})
        send_template_email(
            db,
            recipients,
            subject=f"Yeni Sözleşme: {number}",
            template="detail",
            category="contract_create",
            tenant_id=actor.tenant_id,
            title="Yeni Sözleşme Oluşturuldu",
            intro="Sözleşmenin kısa özeti aşağıdadır.",
            fields=fields,
            action_url=public_url(f"/sozlesmeler/{contract_id}"),
            action_text="Sözleşmeyi Aç",
        )
        return ServiceOutput(payload=repository.get_by_id(db, contract_id), status_code=201)

    def update(self, db, *, actor: Actor, contract_id: int, payload: Dict[str, Any]) -> ServiceOutput:
        tenant_id = actor.tenant_id
        contract = self._load(db, tenant_id, contract_id)
        repository = ContractRepository(tenant_id=tenant_id)
        fields: Dict[str, Any] = {}
        errors: List[str] = []

        for field in _EDITABLE_TEXT_FIELDS:
            if field in payload:
                fields[field] = clean_text(payload.get(field))
        if "title" in fields and not fields["title"]:
            errors.append("title_required")
        if "type" in fields and not fields["type"]:
            errors.append("type_required")
        if "currency" in fields:
            fields["currency"] = fields["currency"] or "TRY"
        if "parties" in payload:
            fields["parties"] = normalize_parties(payload.get("parties"))
            if not fields["parties"]:
                errors.append("parties_required")
        if "status" in payload:
            fields["status"] = clean_text(payload.get("status"))
            if fields["status"] not in CONTRACT_STATUSES:
                errors.append("invalid_status")
        if "start_date" in payload:
            start_date = parse_date(payload.get("start_date"))
            if start_date is None:
                errors.append("invalid_startDate")
            else:
                fields["start_date"] = start_date.isoformat()
        if "end_date" in payload:
            end_raw = clean_text(payload.get("end_date"))
            end_date = parse_date(end_raw)
            if end_raw and end_date is None:
                errors.append("invalid_endDate")
            else:
                fields["end_date"] = end_date.isoformat() if end_date else None
                fields["expiry_reminder_window"] = None
                fields["expiry_reminded_at"] = None
        if "value" in payload:
            fields["value"] = parse_float(payload.get("value"))
        if "responsible_user_id" in payload:
            fields["responsible_user_id"] = parse_positive_int(payload.get("responsible_user_id"))
        if "order_id" in payload:
            fields["order_id"] = parse_positive_int(payload.get("order_id"))
        if "number" in payload:
            fields["number"] = clean_text(payload.get("number"))
            if not fields["number"]:
                errors.append("number_required")

        start_text = fields.get("start_date", contract.get("start_date"))
        end_text = fields.get("end_date", contract.get("end_date"))
        if start_text and end_text and str(start_text) > str(end_text):
            errors.append("start_after_end")
        if errors:
            raise UserActionError(code="invalid_payload", details=errors)
        if not fields:
            raise ValidationError(code="no_changes")
        if fields.get("number") and repository.find_by_number(db, fields["number"], exclude_id=contract_id):
            raise ConflictError(code="duplicate_number", details={"number": fields["number"]})

        repository.update_fields(db, contract_id, fields)
        db.commit()
        changes = compute_changes(
            contract, {key: value for key, value in fields.items() if not key.startswith("expiry_remind")}
        )
        if changes:
            record_audit(
                db,
                tenant_id=tenant_id,
                action="UPDATE",
                entity_type="Contract",
                entity_id=contract_id,
                user_id=actor.user_id,
                old_data=changes["old"],
                new_data=changes["new"],
            )
        return self.get(db, tenant_id=tenant_id, contract_id=contract_id)

    def delete(self, db, *, actor: Actor, contract_id: int) -> ServiceOutput:
        contract = self._load(db, actor.tenant_id, contract_id)
        ContractRepository(tenant_id=actor.tenant_id).soft_delete(db, contract_id)
        db.commit()
        record_audit(
            db,
            tenant_id=actor.tenant_id,
            action="DELETE",
            entity_type="Contract",
            entity_id=contract_id,
            user_id=actor.user_id,
            old_data={"number": contract.get("number"), "title": contract.get("title"), "status": contract.get("status")},
        )
        return ServiceOutput(payload={"ok": True, "id": contract_id})

    def remind_expiring(self, db, *, tenant_id: str) -> dict:
        """Reminds about contracts ending within the configured windows.

        Each contract is reminded once per window: the narrowest window that
        holds its end date is stored on the row, so repeated runs only send
        again after the contract crosses into a narrower window.
        """
        repository = ContractRepository(tenant_id=tenant_id)
        users = UserRepository(tenant_id=tenant_id)
        windows = reminder_days(current_app.config.get("CONTRACT_REMINDER_DAYS", "30,15,7,1"))
        if not windows:
            return {"ok": True, "count": 0}
        today = utc_now().date()
        contracts = repository.expiring_between(
            db,
            start=today.isoformat(),
            end=(today + timedelta(days=windows[0])).isoformat(),
        )
        count = 0
        for contract in contracts:
            end_date = parse_date(contract.get("end_date"))
            if end_date is None:
                continue
            window = reminder_window((end_date - today).days, windows)
            reminded_window = contract.get("expiry_reminder_window")
            if window is None or (reminded_window is not None and int(reminded_window) <= window):
                continue
            self._remind(db, tenant_id=tenant_id, contract=contract, users=users)
            repository.update_fields(
                db,
                contract["id"],
                {"expiry_reminder_window": window, "expiry_reminded_at": to_db_timestamp(utc_now())},
                touch=False,
            )
            db.commit()
            count += 1
        return {"ok": True, "count": count}

    def _remind(self, db, *, tenant_id: str, contract: Dict[str, Any], users: UserRepository) -> None:
        user_ids = [
            contract.get("responsible_user_id"),
            contract.get("request_responsible_user_id"),
            contract.get("request_owner_user_id"),
        ]
        title = "Sözleşme bitiş tarihi yaklaşıyor"
        body = f"{contract['number']} numaralı sözleşme {contract['end_date']} tarihinde sona eriyor."
        link = f"/sozlesmeler/{contract['id']}"
        self.notifications.notify_many(
            db,
            tenant_id=tenant_id,
            user_ids=user_ids,
            title=title,
            body=body,
            type="contract",
            meta={"contract_id": contract["id"], "end_date": contract["end_date"]},
            link=link,
        )
        try:
            send_template_email(
                db,
                users.emails_for(db, user_ids),
                subject=f"{title}: {contract['number']}",
                template="generic",
                category="contract_expiry",
                tenant_id=tenant_id,
                title=title,
                body=paragraph(body),
                action_url=public_url(link),
                action_text="Sözleşmeyi Aç",
            )
        except Exception:  # noqa: BLE001
            logger.exception("contract_expiry_email_failed", extra={"contract_id": contract["id"]})

    @staticmethod
    def _load(db, tenant_id: str, contract_id: int) -> dict:
        contract = ContractRepository(tenant_id=tenant_id).get_by_id(db, contract_id)
        if not contract:
            raise NotFoundError(code="contract_not_found")
        return contract
