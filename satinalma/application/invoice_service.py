from __future__ import annotations

from typing import Any, Dict, List

from satinalma.application.order_service import OrderService
from satinalma.db import utc_now
from satinalma.domain.contracts import Actor, InvoiceCreateInput, ListQuery, ServiceOutput
from satinalma.errors import ConflictError, NotFoundError, UserActionError, ValidationError
from satinalma.infrastructure.repositories.invoice_repository import InvoiceRepository
from satinalma.infrastructure.repositories.order_repository import OrderRepository
from satinalma.procurement.validators import clean_text, parse_date, parse_float, parse_positive_int
from satinalma.ui_strings import status_keys_for_group, status_label


INVOICE_STATUSES = set(status_keys_for_group("invoice"))


def _normalize_invoice_items(raw_items: Any) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    for raw in raw_items if isinstance(raw_items, list) else []:
        if not isinstance(raw, dict):
            continue
        name = clean_text(raw.get("name"))
        quantity = parse_float(raw.get("quantity"))
        if not name or quantity is None or quantity <= 0:
            continue
        items.append(
            {
                "name": name,
                "sku": clean_text(raw.get("sku")),
                "quantity": quantity,
                "unit_price": max(0.0, parse_float(raw.get("unit_price")) or 0.0),
                "tax_rate": max(0.0, parse_float(raw.get("tax_rate")) or 0.0),
            }
        )
    return items


def invoice_input_from_payload(payload: Dict[str, Any]) -> tuple[InvoiceCreateInput | None, List[str]]:
    errors: List[str] = []
    number = clean_text(payload.get("number"))
    order_no = clean_text(payload.get("order_no"))
    amount = parse_float(payload.get("amount"))
    due_date = parse_date(payload.get("due_date"))
    status = clean_text(payload.get("status")) or "pending"
    if not number:
        errors.append("number_required")
    if not order_no:
        errors.append("order_no_required")
    if amount is None or amount < 0:
        errors.append("invalid_amount")
    if due_date is None:
        errors.append("invalid_dueDate")
    if status not in INVOICE_STATUSES:
        errors.append("invalid_status")
    if errors:
        return None, errors
    return (
        InvoiceCreateInput(
            number=number,
            order_no=order_no,
            amount=amount,
            due_date=due_date.isoformat(),
            currency=clean_text(payload.get("currency")) or "TRY",
            status=status,
            notes=clean_text(payload.get("notes")),
            items=_normalize_invoice_items(payload.get("items")),
        ),
        [],
    )


class InvoiceService:
    def __init__(self, orders: OrderService | None = None) -> None:
        self.orders = orders or OrderService()

    def list(self, db, *, tenant_id: str, query: ListQuery) -> ServiceOutput:
        page = InvoiceRepository(tenant_id=tenant_id).list_page(db, query, today=utc_now().date())
        return ServiceOutput(payload=page.as_payload())

    def get(self, db, *, tenant_id: str, invoice_id: int) -> ServiceOutput:
        invoice = InvoiceRepository(tenant_id=tenant_id).get_detail(db, invoice_id)
        if not invoice:
            raise NotFoundError(code="invoice_not_found")
        invoice["status_label"] = status_label("invoice", invoice.get("status"))
        return ServiceOutput(payload=invoice)

    def create(self, db, *, actor: Actor, payload: Dict[str, Any]) -> ServiceOutput:
        data, errors = invoice_input_from_payload(payload)
        if errors:
            raise UserActionError(code="invalid_payload", details=errors)

        repository = InvoiceRepository(tenant_id=actor.tenant_id)
        if repository.find_by_number(db, data.number):
            raise ConflictError(code="duplicate_number", details={"number": data.number})

        order = self._resolve_order(db, actor.tenant_id, payload.get("order_id"), data.order_no)
        invoice_id = repository.create(db, data=data, order_id=int(order["id"]) if order else None)
        for item in data.items:
            repository.add_item(db, invoice_id, item)

        changed = False
        if order:
            changed = self.orders.set_status(
                db,
                tenant_id=actor.tenant_id,
                order=order,
                status="completed",
                reason="invoice_received",
                actor_user_id=actor.user_id,
            )
        db.commit()
        if changed:
            self.orders.announce_status_change(
                db,
                tenant_id=actor.tenant_id,
                order_id=int(order["id"]),
                status="completed",
                from_status=order.get("status"),
                reason="invoice_received",
            )
        invoice = repository.get_detail(db, invoice_id)
        return ServiceOutput(payload=invoice, status_code=201)

    def update(self, db, *, tenant_id: str, invoice_id: int, payload: Dict[str, Any]) -> ServiceOutput:
        repository = InvoiceRepository(tenant_id=tenant_id)
        if not repository.get_by_id(db, invoice_id):
            raise NotFoundError(code="invoice_not_found")

        fields: Dict[str, Any] = {}
        errors: List[str] = []
        if "status" in payload:
            fields["status"] = clean_text(payload.get("status"))
            if fields["status"] not in INVOICE_STATUSES:
                errors.append("invalid_status")
        if "amount" in payload:
            fields["amount"] = parse_float(payload.get("amount"))
            if fields["amount"] is None or fields["amount"] < 0:
                errors.append("invalid_amount")
        if "due_date" in payload:
            due_date = parse_date(payload.get("due_date"))
            if due_date is None:
                errors.append("invalid_dueDate")
            else:
                fields["due_date"] = due_date.isoformat()
        if "notes" in payload:
            fields["notes"] = clean_text(payload.get("notes"))
        if "currency" in payload:
            fields["currency"] = clean_text(payload.get("currency")) or "TRY"
        if errors:
            raise UserActionError(code="invalid_payload", details=errors)
        if not fields:
            raise ValidationError(code="no_changes")

        repository.update_fields(db, invoice_id, fields)
        db.commit()
        return self.get(db, tenant_id=tenant_id, invoice_id=invoice_id)

    @staticmethod
    def _resolve_order(db, tenant_id: str, raw_order_id: Any, order_no: str) -> dict | None:
        repository = OrderRepository(tenant_id=tenant_id)
        order_id = parse_positive_int(raw_order_id)
        if order_id:
            order = repository.get_by_id(db, order_id)
            if not order:
                raise NotFoundError(code="order_not_found")
            return order
        return repository.find_by_barcode(db, order_no)
