from __future__ import annotations

from typing import Any, Dict, List

from satinalma.application.messaging import paragraph, public_url, send_template_email
from satinalma.application.notification_service import NotificationService
from satinalma.core import EventBus, RequestCreated, get_event_bus
from satinalma.domain.contracts import Actor, ListQuery, RequestCreateInput, ServiceOutput
from satinalma.errors import ConflictError, NotFoundError, ValidationError
from satinalma.infrastructure.repositories.request_repository import RequestRepository
from satinalma.infrastructure.repositories.status_event_repository import StatusEventRepository
from satinalma.infrastructure.repositories.user_repository import UserRepository
from satinalma.procurement.validators import clean_text, is_valid_email, parse_float, parse_positive_int
from satinalma.ui_strings import status_keys_for_group, status_label


REQUEST_STATUSES = set(status_keys_for_group("request"))


def _normalize_request_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    normalized = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        name = clean_text(item.get("name"))
        if not name:
            continue
        quantity = parse_float(item.get("quantity"))
        unit_price = parse_float(item.get("unit_price"))
        normalized.append(
            {
                "name": name,
                "quantity": quantity if quantity and quantity > 0 else 1.0,
                "unit": clean_text(item.get("unit")) or "adet",
                "unit_price": unit_price if unit_price is not None and unit_price >= 0 else None,
                "category_id": parse_positive_int(item.get("category_id")),
            }
        )
    return normalized


class RequestService:
    def __init__(
        self,
        notifications: NotificationService | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.notifications = notifications or NotificationService()
        self.event_bus = event_bus or get_event_bus()

    def create(self, db, *, actor: Actor, create_input: RequestCreateInput) -> ServiceOutput:
        missing = [
            field
            for field, value in (
                ("barcode", create_input.barcode),
                ("subject", create_input.subject),
                ("budget", create_input.budget),
            )
            if value in (None, "")
        ]
        if missing:
            raise ValidationError(code="missing_fields", details=missing)
        if create_input.unit_email and not is_valid_email(create_input.unit_email):
            raise ValidationError(code="invalid_unitEmail")

        repository = RequestRepository(tenant_id=actor.tenant_id)
        if repository.find_by_barcode(db, create_input.barcode):
            raise ConflictError(code="duplicate_barcode", details={"field": "barcode"})

        request_id = repository.create(
            db,
            barcode=create_input.barcode,
            subject=create_input.subject,
            budget=float(create_input.budget),
            owner_user_id=actor.user_id,
            responsible_user_id=create_input.responsible_user_id,
            unit_name=create_input.unit_name,
            unit_email=create_input.unit_email,
        )
        items = _normalize_request_items(create_input.items)
        for item in items:
            repository.add_item(db, request_id, item)
        StatusEventRepository(tenant_id=actor.tenant_id).add_event(
            db,
            entity="request",
            entity_id=request_id,
            from_status=None,
            to_status="pending",
            reason="request_created",
            actor_user_id=actor.user_id,
        )
        db.commit()

        self.notifications.notify(
            db,
            tenant_id=actor.tenant_id,
            user_id=actor.user_id,
            title="Talep oluşturuldu",
            body=f"{create_input.barcode} numaralı talebiniz kaydedildi.",
            type="request",
            meta={"request_id": request_id},
            link=f"/talepler/{request_id}",
        )
        owner = UserRepository(tenant_id=actor.tenant_id).get_contact(db, actor.user_id)
        send_template_email(
            db,
            [(owner or {}).get("email"), create_input.unit_email],
            subject=f"Yeni Talep: {create_input.barcode}",
            template="detail",
            category="request_create",
            tenant_id=actor.tenant_id,
            title="Yeni Talep Oluşturuldu",
            intro="Talebin kısa özeti aşağıdadır.",
            fields=[
                {"label": "Talep No", "value": create_input.barcode},
                {"label": "Konu", "value": create_input.subject},
                {"label": "Bütçe", "value": f"{float(create_input.budget):.2f}"},
                {"label": "Birim", "value": create_input.unit_name or "-"},
            ],
            items=[
                {"name": item["name"], "quantity": item["quantity"], "unit_price": item["unit_price"] or 0}
                for item in items
            ],
            action_url=public_url(f"/talepler/{request_id}"),
            action_text="Talebi Aç",
        )
        self.event_bus.publish(
            RequestCreated(tenant_id=actor.tenant_id, request_id=request_id, barcode=create_input.barcode)
        )
        return ServiceOutput(
            payload={
                "id": request_id,
                "barcode": create_input.barcode,
                "status": "pending",
                "items_created": len(items),
            },
            status_code=201,
        )

    def list(self, db, *, tenant_id: str, query: ListQuery) -> ServiceOutput:
        page = RequestRepository(tenant_id=tenant_id).list_page(db, query)
        return ServiceOutput(payload=page.as_payload())

    def get(self, db, *, tenant_id: str, request_id: int) -> ServiceOutput:
        repository = RequestRepository(tenant_id=tenant_id)
        request_row = repository.get_by_id(db, request_id)
        if not request_row:
            raise NotFoundError(code="request_not_found")
        request_row["items"] = repository.list_items(db, [request_id])
        request_row["status_label"] = status_label("request", request_row.get("status"))
        return ServiceOutput(payload=request_row)

    def update_status(self, db, *, actor: Actor, request_id: int, status: str, reason: str | None = None) -> ServiceOutput:
        if status not in REQUEST_STATUSES:
            raise ValidationError(code="invalid_status", details={"allowed": sorted(REQUEST_STATUSES)})
        repository = RequestRepository(tenant_id=actor.tenant_id)
        request_row = repository.get_by_id(db, request_id)
        if not request_row:
            raise NotFoundError(code="request_not_found")

        previous_status = request_row["status"]
        repository.update_fields(db, request_id, {"status": status})
        StatusEventRepository(tenant_id=actor.tenant_id).add_event(
            db,
            entity="request",
            entity_id=request_id,
            from_status=previous_status,
            to_status=status,
            reason=reason or "status_updated",
            actor_user_id=actor.user_id,
        )
        db.commit()

        title = "Talep durumu güncellendi"
        body = f"{request_row['barcode']} numaralı talebin durumu: {status_label('request', status)}"
        recipients = [request_row.get("owner_user_id"), request_row.get("responsible_user_id")]
        self.notifications.notify_many(
            db,
            tenant_id=actor.tenant_id,
            user_ids=recipients,
            title=title,
            body=body,
            type="request",
            meta={"request_id": request_id, "status": status},
            link=f"/talepler/{request_id}",
        )
        send_template_email(
            db,
            UserRepository(tenant_id=actor.tenant_id).emails_for(db, recipients),
            subject=f"{title}: {request_row['barcode']}",
            template="generic",
            category="request_status",
            tenant_id=actor.tenant_id,
            title=title,
            body=paragraph(body),
            action_url=public_url(f"/talepler/{request_id}"),
            action_text="Talebi Aç",
        )
        return ServiceOutput(
            payload={"ok": True, "id": request_id, "status": status, "previous_status": previous_status}
        )
