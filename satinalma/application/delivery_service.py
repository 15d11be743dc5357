from __future__ import annotations

import secrets
import time
from datetime import timedelta
from typing import Any, Dict, List

from flask import current_app

from satinalma.application.messaging import paragraph, public_url, send_template_email
from satinalma.application.order_service import OrderService
from satinalma.core import DeliveryRecorded, EventBus, get_event_bus
from satinalma.db import parse_db_timestamp, to_db_timestamp, utc_now
from satinalma.domain.contracts import Actor, DeliveryLineInput, DeliveryRecordInput, ServiceOutput
from satinalma.errors import NotFoundError, UserActionError, ValidationError
from satinalma.infrastructure.repositories.delivery_repository import DeliveryRepository
from satinalma.infrastructure.repositories.order_repository import OrderRepository, find_order_by_delivery_token
from satinalma.procurement.reconciliation import next_order_status, reconcile_delivery_quantities
from satinalma.procurement.validators import clean_text, is_valid_email, parse_float, parse_positive_int
from satinalma.ui_strings import success_message


REVIEW_STATUSES = {"approved", "rejected"}


def generate_delivery_code() -> str:
    return f"IRS-{int(time.time() * 1000)}"


def generate_delivery_token() -> str:
    return f"DLV-{secrets.token_hex(4).upper()}"


def delivery_lines_from_payload(raw_items: Any) -> List[DeliveryLineInput]:
    lines: List[DeliveryLineInput] = []
    for raw in raw_items if isinstance(raw_items, list) else []:
        if not isinstance(raw, dict):
            continue
        order_item_id = parse_positive_int(raw.get("order_item_id"))
        quantity = parse_float(raw.get("quantity"))
        if order_item_id is None or quantity is None:
            continue
        lines.append(DeliveryLineInput(order_item_id=order_item_id, quantity=quantity))
    return lines


class DeliveryService:
    def __init__(self, orders: OrderService | None = None, event_bus: EventBus | None = None) -> None:
        self.event_bus = event_bus or get_event_bus()
        self.orders = orders or OrderService(event_bus=self.event_bus)

    def record(self, db, *, actor: Actor, record_input: DeliveryRecordInput) -> ServiceOutput:
        if not record_input.order_id or not record_input.lines:
            raise UserActionError(code="invalid_payload", details=["order_id", "items"])

        order = OrderRepository(tenant_id=actor.tenant_id).get_by_id(db, record_input.order_id)
        if not order:
            raise NotFoundError(code="order_not_found")

        order_items = OrderRepository(tenant_id=actor.tenant_id).list_items(db, int(order["id"]))
        known_item_ids = {int(item["id"]) for item in order_items}
        lines = [
            line for line in record_input.lines if line.quantity > 0 and line.order_item_id in known_item_ids
        ]
        if not lines:
            raise UserActionError(code="no_valid_items")

        repository = DeliveryRepository(tenant_id=actor.tenant_id)
        code = clean_text(record_input.code) or generate_delivery_code()
        if repository.find_by_code(db, code):
            raise UserActionError(code="duplicate_code", details={"code": code})

        delivery_id = repository.create(
            db,
            order_id=int(order["id"]),
            code=code,
            status="approved",
            delivered_at=record_input.delivered_at,
            received_by=clean_text(record_input.received_by),
            notes=clean_text(record_input.notes),
        )
        for line in lines:
            repository.add_item(
                db,
                delivery_id,
                order_item_id=line.order_item_id,
                quantity=line.quantity,
                approved_quantity=line.quantity,
            )

        reconciliation, order_status, changed = self._apply_reconciliation(
            db,
            tenant_id=actor.tenant_id,
            order=order,
            order_items=order_items,
            reason="delivery_recorded",
            actor_user_id=actor.user_id,
        )
        db.commit()
        if changed:
            self.orders.announce_status_change(
                db,
                tenant_id=actor.tenant_id,
                order_id=int(order["id"]),
                status=order_status,
                from_status=order.get("status"),
                reason="delivery_recorded",
            )
        self.event_bus.publish(
            DeliveryRecorded(
                tenant_id=actor.tenant_id,
                order_id=int(order["id"]),
                delivery_id=delivery_id,
                all_delivered=bool(reconciliation["all_delivered"]),
            )
        )
        return ServiceOutput(
            payload={
                "ok": True,
                "id": delivery_id,
                "code": code,
                "order_status": order_status,
                "reconciliation": reconciliation,
                "message": success_message("delivery_recorded"),
            },
            status_code=201,
        )

    def create_token(self, db, *, tenant_id: str, order_id: int | None) -> ServiceOutput:
        if not order_id:
            raise ValidationError(code="missing_fields", details=["order_id"])
        repository = OrderRepository(tenant_id=tenant_id)
        if not repository.get_by_id(db, order_id):
            raise NotFoundError(code="order_not_found")
        valid_days = int(current_app.config.get("DELIVERY_TOKEN_VALID_DAYS", 7) or 7)
        token = generate_delivery_token()
        expiry = to_db_timestamp(utc_now() + timedelta(days=valid_days))
        repository.update_fields(db, order_id, {"delivery_token": token, "delivery_token_expiry": expiry})
        db.commit()
        return ServiceOutput(
            payload={
                "ok": True,
                "order_id": order_id,
                "token": token,
                "expires_at": expiry,
                "url": public_url(f"/portal/delivery/{token}"),
            }
        )

    def send_email(self, db, *, tenant_id: str, token: str | None, email: str | None) -> ServiceOutput:
        token = clean_text(token)
        email = clean_text(email)
        missing = [field for field, value in (("token", token), ("email", email)) if not value]
        if missing:
            raise ValidationError(code="missing_fields", details=missing)
        if not is_valid_email(email):
            raise ValidationError(code="invalid_email")
        order = find_order_by_delivery_token(db, token)
        if not order or str(order.get("tenant_id")) != str(tenant_id):
            raise NotFoundError(code="invalid_token")

        results = send_template_email(
            db,
            [email],
            subject=f"Teslimat Girişi: {order['barcode']}",
            template="generic",
            category="delivery_link",
            tenant_id=tenant_id,
            title="Teslimat Bilgisi Girişi",
            body=paragraph(
                f"{order['barcode']} numaralı siparişin teslimat bilgilerini aşağıdaki bağlantıdan girebilirsiniz."
            ),
            action_url=public_url(f"/portal/delivery/{token}"),
            action_text="Teslimat Gir",
        )
        return ServiceOutput(payload={**results[0].as_dict(), "order_id": int(order["id"])})

    def list(self, db, *, tenant_id: str, order_id: int | None = None, status: str | None = None) -> ServiceOutput:
        items = DeliveryRepository(tenant_id=tenant_id).list_filtered(db, order_id=order_id, status=status)
        return ServiceOutput(payload={"items": items, "total": len(items)})

    def update_status(self, db, *, actor: Actor, delivery_id: int, status: str | None) -> ServiceOutput:
        if status not in REVIEW_STATUSES:
            raise ValidationError(code="invalid_status", details={"allowed": sorted(REVIEW_STATUSES)})
        repository = DeliveryRepository(tenant_id=actor.tenant_id)
        delivery = repository.get_by_id(db, delivery_id)
        if not delivery:
            raise NotFoundError(code="delivery_not_found")

        repository.update_fields(db, delivery_id, {"status": status})
        if status == "approved":
            repository.fill_approved_quantities(db, delivery_id)

        order_repository = OrderRepository(tenant_id=actor.tenant_id)
        order = order_repository.get_by_id(db, int(delivery["order_id"]))
        order_status = None
        changed = False
        if order:
            _, order_status, changed = self._apply_reconciliation(
                db,
                tenant_id=actor.tenant_id,
                order=order,
                order_items=order_repository.list_items(db, int(order["id"])),
                reason=f"delivery_{status}",
                actor_user_id=actor.user_id,
            )
        db.commit()
        if changed:
            self.orders.announce_status_change(
                db,
                tenant_id=actor.tenant_id,
                order_id=int(order["id"]),
                status=order_status,
                from_status=order.get("status"),
                reason=f"delivery_{status}",
            )
        return ServiceOutput(
            payload={"ok": True, "id": delivery_id, "status": status, "order_status": order_status}
        )

    def portal_get(self, db, *, token: str) -> ServiceOutput:
        order = self._order_for_token(db, token)
        tenant_id = str(order["tenant_id"])
        items = OrderRepository(tenant_id=tenant_id).list_items(db, int(order["id"]))
        deliveries = DeliveryRepository(tenant_id=tenant_id).list_for_order(db, int(order["id"]))
        reconciliation = reconcile_delivery_quantities(items, deliveries)
        return ServiceOutput(
            payload={
                "order": {
                    "id": order["id"],
                    "barcode": order["barcode"],
                    "status": order["status"],
                },
                "items": items,
                "reconciliation": reconciliation,
                "token_expires_at": order.get("delivery_token_expiry"),
            }
        )

    def portal_record(self, db, *, token: str, payload: Dict[str, Any]) -> ServiceOutput:
        order = self._order_for_token(db, token)
        return self.record(
            db,
            actor=Actor(tenant_id=str(order["tenant_id"])),
            record_input=DeliveryRecordInput(
                order_id=int(order["id"]),
                lines=delivery_lines_from_payload(payload.get("items")),
                code=payload.get("code"),
                received_by=payload.get("received_by"),
                notes=payload.get("notes"),
            ),
        )

    def _apply_reconciliation(
        self,
        db,
        *,
        tenant_id: str,
        order: Dict[str, Any],
        order_items: List[dict],
        reason: str,
        actor_user_id: int | None,
    ) -> tuple[Dict[str, Any], str | None, bool]:
        deliveries = DeliveryRepository(tenant_id=tenant_id).list_for_order(db, int(order["id"]))
        reconciliation = reconcile_delivery_quantities(order_items, deliveries)
        target_status = next_order_status(order.get("status"), reconciliation)
        changed = False
        if target_status and target_status != order.get("status"):
            changed = self.orders.set_status(
                db,
                tenant_id=tenant_id,
                order=order,
                status=target_status,
                reason=reason,
                actor_user_id=actor_user_id,
            )
        return reconciliation, target_status, changed

    @staticmethod
    def _order_for_token(db, token: str) -> dict:
        order = find_order_by_delivery_token(db, token)
        if not order:
            raise NotFoundError(code="invalid_token")
        expiry = parse_db_timestamp(order.get("delivery_token_expiry"))
        if expiry is None or expiry < utc_now():
            raise NotFoundError(code="invalid_token")
        return order
