from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Any, Dict

from satinalma.application.audit_service import record_audit
from satinalma.application.messaging import paragraph, public_url, send_template_email
from satinalma.application.notification_service import NotificationService
from satinalma.core import EventBus, OrderCreated, OrderStatusChanged, get_event_bus
from satinalma.domain.contracts import Actor, ListQuery, ServiceOutput
from satinalma.errors import ConflictError, IntegrationError, NotFoundError, UserActionError, ValidationError
from satinalma.infrastructure.repositories.delivery_repository import DeliveryRepository
from satinalma.infrastructure.repositories.invoice_repository import InvoiceRepository
from satinalma.infrastructure.repositories.order_repository import OrderRepository
from satinalma.infrastructure.repositories.status_event_repository import StatusEventRepository
from satinalma.infrastructure.repositories.supplier_repository import SupplierRepository
from satinalma.infrastructure.repositories.user_repository import UserRepository
from satinalma.mail.mailer import DEFERRED_OUTSIDE_BUSINESS_HOURS, SMTP_NOT_CONFIGURED
from satinalma.procurement.matching import three_way_match
from satinalma.procurement.validators import clean_text, order_items_total, parse_positive_int, validate_order_items
from satinalma.ui_strings import status_keys_for_group, status_label


ORDER_STATUSES = set(status_keys_for_group("order"))


def generate_order_barcode(now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    epoch_ms = int(moment.timestamp() * 1000)
    return f"ORD-{moment.year}-{epoch_ms % 1_000_000:06d}"


def unique_order_barcode(db, repository: OrderRepository) -> str:
    barcode = generate_order_barcode()
    while repository.find_by_barcode(db, barcode):
        barcode = f"{generate_order_barcode()}-{secrets.token_hex(2).upper()}"
    return barcode


class OrderService:
    def __init__(
        self,
        notifications: NotificationService | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.notifications = notifications or NotificationService()
        self.event_bus = event_bus or get_event_bus()

    def create(self, db, *, actor: Actor, payload: Dict[str, Any]) -> ServiceOutput:
        barcode = clean_text(payload.get("barcode"))
        if not barcode:
            raise ValidationError(code="missing_fields", details=["barcode"])
        repository = OrderRepository(tenant_id=actor.tenant_id)
        if repository.find_by_barcode(db, barcode):
            raise ConflictError(code="duplicate_barcode", details={"field": "barcode"})

        items, errors = validate_order_items(payload.get("items") or [])
        if errors:
            raise UserActionError(code="invalid_payload", details=errors)

        status = clean_text(payload.get("status")) or "pending"
        if status not in ORDER_STATUSES:
            raise ValidationError(code="invalid_status")
        supplier_id = self._resolve_supplier_id(db, actor.tenant_id, payload.get("supplier_id"))

        order_id = repository.create(
            db,
            barcode=barcode,
            status=status,
            supplier_id=supplier_id,
            request_id=parse_positive_int(payload.get("request_id")),
            responsible_user_id=parse_positive_int(payload.get("responsible_user_id")),
            realized_total=order_items_total(items),
            currency=clean_text(payload.get("currency")) or "TRY",
        )
        for item in items:
            repository.add_item(db, order_id, item)
        StatusEventRepository(tenant_id=actor.tenant_id).add_event(
            db,
            entity="order",
            entity_id=order_id,
            from_status=None,
            to_status=status,
            reason="order_created",
            actor_user_id=actor.user_id,
        )
        db.commit()
        record_audit(
            db,
            tenant_id=actor.tenant_id,
            action="CREATE",
            entity_type="Order",
            entity_id=order_id,
            user_id=actor.user_id,
            new_data={"barcode": barcode, "status": status, "realized_total": order_items_total(items)},
        )
        self.event_bus.publish(OrderCreated(tenant_id=actor.tenant_id, order_id=order_id, barcode=barcode))
        return ServiceOutput(
            payload={
                "id": order_id,
                "barcode": barcode,
                "status": status,
                "realized_total": order_items_total(items),
                "items_created": len(items),
            },
            status_code=201,
        )

    def list(self, db, *, tenant_id: str, query: ListQuery) -> ServiceOutput:
        page = OrderRepository(tenant_id=tenant_id).list_page(db, query)
        return ServiceOutput(payload=page.as_payload())

    def get(self, db, *, tenant_id: str, order_id: int) -> ServiceOutput:
        order = self._load(db, tenant_id, order_id)
        order["status_label"] = status_label("order", order.get("status"))
        order["items"] = OrderRepository(tenant_id=tenant_id).list_items(db, order_id)
        order["deliveries"] = DeliveryRepository(tenant_id=tenant_id).list_for_order(db, order_id)
        order["invoices"] = InvoiceRepository(tenant_id=tenant_id).list_for_order(db, order_id)
        order["status_history"] = StatusEventRepository(tenant_id=tenant_id).list_for_entity(
            db, entity="order", entity_id=order_id
        )
        return ServiceOutput(payload=order)

    def update(self, db, *, actor: Actor, order_id: int, payload: Dict[str, Any]) -> ServiceOutput:
        order = self._load(db, actor.tenant_id, order_id)
        repository = OrderRepository(tenant_id=actor.tenant_id)
        fields: Dict[str, Any] = {}

        if "items" in payload:
            items, errors = validate_order_items(payload.get("items"))
            if errors:
                raise UserActionError(code="invalid_payload", details=errors)
            repository.replace_items(db, order_id, items)
            fields["realized_total"] = order_items_total(items)
        if "supplier_id" in payload:
            fields["supplier_id"] = self._resolve_supplier_id(db, actor.tenant_id, payload.get("supplier_id"))
        if "responsible_user_id" in payload:
            fields["responsible_user_id"] = parse_positive_int(payload.get("responsible_user_id"))
        if "currency" in payload:
            fields["currency"] = clean_text(payload.get("currency")) or "TRY"

        new_status = None
        if "status" in payload:
            new_status = clean_text(payload.get("status"))
            if new_status not in ORDER_STATUSES:
                raise ValidationError(code="invalid_status")
        if not fields and "items" not in payload and new_status is None:
            raise ValidationError(code="no_changes")

        repository.update_fields(db, order_id, fields)
        changed = False
        reason = clean_text(payload.get("reason")) or "status_updated"
        if new_status is not None:
            changed = self.set_status(
                db,
                tenant_id=actor.tenant_id,
                order=order,
                status=new_status,
                reason=reason,
                actor_user_id=actor.user_id,
            )
        db.commit()
        if changed:
            self.announce_status_change(
                db,
                tenant_id=actor.tenant_id,
                order_id=order_id,
                status=new_status,
                from_status=order.get("status"),
                reason=reason,
            )
        return self.get(db, tenant_id=actor.tenant_id, order_id=order_id)

    def delete(self, db, *, tenant_id: str, order_id: int) -> ServiceOutput:
        self._load(db, tenant_id, order_id)
        OrderRepository(tenant_id=tenant_id).delete_cascade(db, order_id)
        db.commit()
        return ServiceOutput(payload={"ok": True, "id": order_id})

    def notify_supplier(self, db, *, tenant_id: str, order_id: int) -> ServiceOutput:
        order = self._load(db, tenant_id, order_id)
        if not order.get("supplier_email"):
            raise UserActionError(code="no_supplier_email")
        items = OrderRepository(tenant_id=tenant_id).list_items(db, order_id)
        results = send_template_email(
            db,
            [order["supplier_email"]],
            subject=f"Sipariş: {order['barcode']}",
            template="detail",
            category="order_notification",
            tenant_id=tenant_id,
            title="Yeni Sipariş",
            intro=f"Sayın {order.get('supplier_name') or 'Tedarikçi'}, siparişimizin detayları aşağıdadır.",
            fields=[
                {"label": "Sipariş No", "value": order["barcode"]},
                {"label": "Para Birimi", "value": order.get("currency") or "TRY"},
            ],
            items=[
                {"name": item["name"], "quantity": item["quantity"], "unit_price": item["unit_price"]}
                for item in items
            ],
        )
        result = results[0]
        if not result.ok and result.error not in {DEFERRED_OUTSIDE_BUSINESS_HOURS, SMTP_NOT_CONFIGURED}:
            raise IntegrationError(code="email_delivery_failed", details=result.as_dict())
        return ServiceOutput(payload={**result.as_dict(), "order_id": order_id})

    def match(self, db, *, tenant_id: str, order_id: int) -> ServiceOutput:
        order = self._load(db, tenant_id, order_id)
        items = OrderRepository(tenant_id=tenant_id).list_items(db, order_id)
        deliveries = DeliveryRepository(tenant_id=tenant_id).list_for_order(db, order_id)
        invoices = InvoiceRepository(tenant_id=tenant_id).list_for_order(db, order_id)
        return ServiceOutput(payload=three_way_match(order, items, deliveries, invoices))

    def set_status(
        self,
        db,
        *,
        tenant_id: str,
        order: Dict[str, Any],
        status: str,
        reason: str,
        actor_user_id: int | None = None,
    ) -> bool:
        """Writes the status and its history row; the caller commits, then announces."""
        previous_status = order.get("status")
        if previous_status == status:
            return False
        order_id = int(order["id"])
        OrderRepository(tenant_id=tenant_id).update_fields(db, order_id, {"status": status})
        StatusEventRepository(tenant_id=tenant_id).add_event(
            db,
            entity="order",
            entity_id=order_id,
            from_status=previous_status,
            to_status=status,
            reason=reason,
            actor_user_id=actor_user_id,
        )
        return True

    def announce_status_change(
        self,
        db,
        *,
        tenant_id: str,
        order_id: int,
        status: str,
        from_status: str | None = None,
        reason: str = "",
    ) -> None:
        self.event_bus.publish(
            OrderStatusChanged(
                tenant_id=tenant_id,
                order_id=order_id,
                from_status=from_status,
                to_status=status,
                reason=reason,
            )
        )
        order = self._load(db, tenant_id, order_id)
        title = "Sipariş durumu güncellendi"
        body = f"{order['barcode']} numaralı siparişin durumu: {status_label('order', status)}"
        self.notifications.notify_many(
            db,
            tenant_id=tenant_id,
            user_ids=[order.get("responsible_user_id"), order.get("request_owner_user_id")],
            title=title,
            body=body,
            type="order",
            meta={"order_id": order_id, "status": status},
            link=f"/siparisler/{order_id}",
        )
        if status == "completed":
            self.send_evaluation_request(db, tenant_id=tenant_id, order=order)

    def send_evaluation_request(self, db, *, tenant_id: str, order: Dict[str, Any]) -> int:
        owner_email = None
        if order.get("request_owner_user_id"):
            owner = UserRepository(tenant_id=tenant_id).get_contact(db, order["request_owner_user_id"])
            owner_email = (owner or {}).get("email")
        results = send_template_email(
            db,
            [owner_email, order.get("request_unit_email")],
            subject=f"Tedarikçi Değerlendirmesi: {order['barcode']}",
            template="generic",
            category="evaluation_request",
            tenant_id=tenant_id,
            title="Tedarikçi Değerlendirmesi",
            body=paragraph(
                f"{order['barcode']} numaralı sipariş tamamlandı. "
                f"Lütfen {order.get('supplier_name') or 'tedarikçi'} için değerlendirme formunu doldurun."
            ),
            action_url=public_url(f"/degerlendirme?order_id={order['id']}"),
            action_text="Değerlendir",
        )
        return len(results)

    @staticmethod
    def _load(db, tenant_id: str, order_id: int) -> dict:
        order = OrderRepository(tenant_id=tenant_id).get_with_supplier(db, order_id)
        if not order:
            raise NotFoundError(code="order_not_found")
        return order

    @staticmethod
    def _resolve_supplier_id(db, tenant_id: str, raw_value: Any) -> int | None:
        if raw_value in (None, ""):
            return None
        supplier_id = parse_positive_int(raw_value)
        if supplier_id is None or not SupplierRepository(tenant_id=tenant_id).get_by_id(db, supplier_id):
            raise NotFoundError(code="supplier_not_found")
        return supplier_id
