from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, List

from flask import current_app

from satinalma.application.audit_service import record_audit
from satinalma.application.messaging import paragraph, public_url, send_template_email
from satinalma.application.order_service import unique_order_barcode
from satinalma.core import EventBus, OfferSubmitted, OrderCreated, RfqCreated, RfqPublished, get_event_bus
from satinalma.db import parse_db_timestamp, to_db_timestamp, utc_now
from satinalma.domain.contracts import Actor, ListQuery, OfferSubmitInput, RfqCreateInput, ServiceOutput
from satinalma.errors import NotFoundError, PermissionError, UserActionError, ValidationError
from satinalma.infrastructure.repositories.order_repository import OrderRepository
from satinalma.infrastructure.repositories.request_repository import RequestRepository
from satinalma.infrastructure.repositories.rfq_repository import RfqRepository, find_invitation_by_token
from satinalma.infrastructure.repositories.status_event_repository import StatusEventRepository
from satinalma.infrastructure.repositories.supplier_repository import SupplierRepository
from satinalma.procurement.validators import clean_text, is_valid_email, parse_float, parse_positive_int
from satinalma.ui_strings import status_label, success_message


logger = logging.getLogger("satinalma.rfq")

MANUAL_RFQ_STATUSES = {"ACTIVE", "PASSIVE", "CANCELLED"}
FINALIZABLE_RFQ_STATUSES = {"ACTIVE", "OPEN"}
INVITEE_ALERT_STATUSES = {"PASSIVE", "CANCELLED"}


def _public_invitation(invitation: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in invitation.items() if key != "token"}


def _offer_line_total(quantity: float, unit_price: float, vat_rate: float) -> float:
    return round(quantity * unit_price * (1 + vat_rate / 100.0), 2)


class RfqService:
    def __init__(self, event_bus: EventBus | None = None) -> None:
        self.event_bus = event_bus or get_event_bus()

    def create(self, db, *, actor: Actor, create_input: RfqCreateInput) -> ServiceOutput:
        missing = [
            field
            for field, value in (
                ("title", create_input.title),
                ("request_ids", create_input.request_ids),
                ("suppliers", create_input.suppliers),
            )
            if not value
        ]
        if missing:
            raise ValidationError(code="missing_fields", details=missing)

        request_repository = RequestRepository(tenant_id=actor.tenant_id)
        requests = request_repository.list_by_ids(db, create_input.request_ids)
        if not requests:
            raise NotFoundError(code="requests_not_found")

        invitees = self._resolve_invitees(db, actor.tenant_id, create_input)
        if not invitees:
            raise ValidationError(code="missing_fields", details=["suppliers"])

        repository = RfqRepository(tenant_id=actor.tenant_id)
        prefix = f"RFQ-{requests[0]['barcode']}"
        existing = repository.count_codes_with_prefix(db, prefix)
        rfx_code = prefix if existing == 0 else f"{prefix}-{existing + 1}"

        rfq_id = repository.create(
            db,
            rfx_code=rfx_code,
            title=create_input.title,
            deadline=create_input.deadline,
            created_by_user_id=actor.user_id,
        )
        request_ids = [int(row["id"]) for row in requests]
        for request_id in request_ids:
            repository.link_request(db, rfq_id, request_id)

        item_count = 0
        for item in request_repository.list_items(db, request_ids):
            category_id = create_input.item_categories.get(int(item["id"]), item.get("category_id"))
            repository.add_item(
                db,
                rfq_id,
                request_item_id=int(item["id"]),
                name=item["name"],
                quantity=float(item["quantity"]),
                unit=item.get("unit") or "adet",
                description=f"Talep No: {item['request_barcode']}",
                category_id=category_id,
            )
            item_count += 1

        valid_days = int(current_app.config.get("RFQ_INVITE_VALID_DAYS", 7) or 7)
        token_expiry = to_db_timestamp(utc_now() + timedelta(days=valid_days))
        invitations = []
        for invitee in invitees:
            token = secrets.token_hex(32)
            repository.add_invitation(
                db,
                rfq_id,
                supplier_id=invitee["supplier_id"],
                email=invitee["email"],
                contact_name=invitee["contact_name"],
                company_name=invitee["name"],
                token=token,
                token_expiry=token_expiry,
            )
            invitations.append({**invitee, "token": token})

        request_repository.mark_status(db, request_ids, "in_rfq", only_from=("pending", "approved"))
        StatusEventRepository(tenant_id=actor.tenant_id).add_event(
            db,
            entity="rfq",
            entity_id=rfq_id,
            from_status=None,
            to_status="ACTIVE",
            reason="rfq_created",
            actor_user_id=actor.user_id,
        )
        db.commit()

        for invitation in invitations:
            send_template_email(
                db,
                [invitation["email"]],
                subject=f"Teklif Talebi: {create_input.title}",
                template="generic",
                category="rfq_invitation",
                tenant_id=actor.tenant_id,
                title="Teklif Talebi Daveti",
                body=paragraph(
                    f"Sayın {invitation['contact_name'] or invitation['name'] or 'Tedarikçi'}, "
                    f"{rfx_code} numaralı teklif talebi için teklifinizi bekliyoruz."
                ),
                action_url=public_url(f"/portal/rfq/{invitation['token']}"),
                action_text="Teklif Ver",
            )

        self.event_bus.publish(
            RfqCreated(tenant_id=actor.tenant_id, rfq_id=rfq_id, rfx_code=rfx_code, invited=len(invitations))
        )
        return ServiceOutput(
            payload={
                "id": rfq_id,
                "rfx_code": rfx_code,
                "status": "ACTIVE",
                "items_created": item_count,
                "invited": len(invitations),
            },
            status_code=201,
        )

    def list(self, db, *, tenant_id: str, query: ListQuery) -> ServiceOutput:
        page = RfqRepository(tenant_id=tenant_id).list_page(db, query)
        return ServiceOutput(payload=page.as_payload())

    def get(self, db, *, tenant_id: str, rfq_id: int) -> ServiceOutput:
        repository = RfqRepository(tenant_id=tenant_id)
        rfq = self._load(db, repository, rfq_id)
        rfq["status_label"] = status_label("rfq", rfq.get("status"))
        rfq["request_ids"] = repository.request_ids(db, rfq_id)
        rfq["items"] = repository.list_items(db, rfq_id)
        rfq["invitations"] = [_public_invitation(row) for row in repository.list_invitations(db, rfq_id)]
        offers = repository.list_offers(db, rfq_id)
        for offer in offers:
            offer["items"] = repository.list_offer_items(db, int(offer["id"]))
        rfq["offers"] = offers
        return ServiceOutput(payload=rfq)

    def update_status(self, db, *, actor: Actor, rfq_id: int, status: str) -> ServiceOutput:
        if status not in MANUAL_RFQ_STATUSES:
            raise ValidationError(code="invalid_status", details={"allowed": sorted(MANUAL_RFQ_STATUSES)})
        repository = RfqRepository(tenant_id=actor.tenant_id)
        rfq = self._load(db, repository, rfq_id)
        repository.set_status(db, rfq_id, status)
        StatusEventRepository(tenant_id=actor.tenant_id).add_event(
            db,
            entity="rfq",
            entity_id=rfq_id,
            from_status=rfq["status"],
            to_status=status,
            reason="status_updated",
            actor_user_id=actor.user_id,
        )
        db.commit()

        emailed = 0
        if status in INVITEE_ALERT_STATUSES:
            results = send_template_email(
                db,
                [row["email"] for row in repository.list_invitations(db, rfq_id)],
                subject=f"Teklif Talebi Güncellendi: {rfq['rfx_code']}",
                template="generic",
                category="rfq_status",
                tenant_id=actor.tenant_id,
                title="Teklif Talebi Durumu",
                body=paragraph(
                    f"{rfq['rfx_code']} numaralı teklif talebinin durumu "
                    f"{status_label('rfq', status)} olarak güncellendi."
                ),
            )
            emailed = len(results)
        return ServiceOutput(payload={"ok": True, "id": rfq_id, "status": status, "emailed": emailed})

    def publish(self, db, *, actor: Actor, rfq_id: int) -> ServiceOutput:
        repository = RfqRepository(tenant_id=actor.tenant_id)
        rfq = self._load(db, repository, rfq_id)
        if rfq["status"] == "OPEN":
            raise UserActionError(code="already_published")

        repository.set_status(db, rfq_id, "OPEN")
        StatusEventRepository(tenant_id=actor.tenant_id).add_event(
            db,
            entity="rfq",
            entity_id=rfq_id,
            from_status=rfq["status"],
            to_status="OPEN",
            reason="rfq_published",
            actor_user_id=actor.user_id,
        )
        db.commit()

        notified = self.notify_suppliers_by_category(db, tenant_id=actor.tenant_id, rfq_id=rfq_id)
        self.event_bus.publish(RfqPublished(tenant_id=actor.tenant_id, rfq_id=rfq_id, notified=notified))
        rfq = repository.get_by_id(db, rfq_id)
        return ServiceOutput(
            payload={
                "ok": True,
                "message": success_message("rfq_published"),
                "rfq": rfq,
                "notified": notified,
            }
        )

    def notify_suppliers_by_category(self, db, *, tenant_id: str, rfq_id: int) -> int:
        repository = RfqRepository(tenant_id=tenant_id)
        category_ids = repository.category_ids(db, rfq_id)
        if not category_ids:
            return 0
        rfq = repository.get_by_id(db, rfq_id) or {}
        suppliers = SupplierRepository(tenant_id=tenant_id).list_notifiable_for_categories(db, category_ids)
        notified = 0
        for supplier in suppliers:
            try:
                results = send_template_email(
                    db,
                    [supplier["email"]],
                    subject=f"Yeni Teklif Talebi: {rfq.get('title') or rfq.get('rfx_code')}",
                    template="generic",
                    category="rfq_notification",
                    tenant_id=tenant_id,
                    title="Yeni Teklif Talebi Yayınlandı",
                    body=paragraph(
                        f"Sayın {supplier.get('contact_name') or supplier['name']}, kategorinize uygun "
                        f"{rfq.get('rfx_code')} numaralı teklif talebi yayınlandı."
                    ),
                )
            except Exception:  # noqa: BLE001
                logger.exception("rfq_supplier_notification_failed", extra={"supplier_id": supplier["id"]})
                continue
            if results and results[0].ok:
                notified += 1
        return notified

    def portal_get(self, db, *, token: str) -> ServiceOutput:
        invitation = self._load_invitation(db, token)
        if self._token_expired(invitation):
            raise PermissionError(code="invalid_token")
        repository = RfqRepository(tenant_id=invitation["tenant_id"])
        rfq = self._load(db, repository, int(invitation["rfq_id"]))
        offer = repository.find_offer(db, int(invitation["id"]), int(rfq.get("negotiation_round") or 1))
        if offer:
            offer["items"] = repository.list_offer_items(db, int(offer["id"]))
        return ServiceOutput(
            payload={
                "invitation": _public_invitation(invitation),
                "rfq": {
                    "id": rfq["id"],
                    "rfx_code": rfq["rfx_code"],
                    "title": rfq["title"],
                    "status": rfq["status"],
                    "deadline": rfq.get("deadline"),
                    "negotiation_round": rfq.get("negotiation_round"),
                },
                "items": repository.list_items(db, int(rfq["id"])),
                "offer": offer,
            }
        )

    def portal_submit(self, db, *, token: str, submit_input: OfferSubmitInput) -> ServiceOutput:
        invitation = self._load_invitation(db, token)
        if self._token_expired(invitation):
            record_audit(
                db,
                tenant_id=str(invitation["tenant_id"]),
                action="VIEW",
                entity_type="Rfq",
                entity_id=invitation["rfq_id"],
                new_data={"attempt": "expired_token", "supplier_email": invitation.get("email")},
            )
            raise PermissionError(code="invalid_token")
        tenant_id = str(invitation["tenant_id"])
        repository = RfqRepository(tenant_id=tenant_id)
        rfq = self._load(db, repository, int(invitation["rfq_id"]))
        deadline = parse_db_timestamp(rfq.get("deadline"))
        if deadline is not None and deadline < utc_now():
            raise PermissionError(code="rfq_expired")
        if not submit_input.items:
            raise UserActionError(code="invalid_payload", details=["items"])

        rfq_items = {int(item["id"]): item for item in repository.list_items(db, int(rfq["id"]))}
        lines: List[Dict[str, Any]] = []
        for raw in submit_input.items:
            if not isinstance(raw, dict):
                continue
            rfq_item_id = parse_positive_int(raw.get("rfq_item_id"))
            unit_price = parse_float(raw.get("unit_price"))
            if rfq_item_id not in rfq_items or unit_price is None or unit_price < 0:
                continue
            quantity = parse_float(raw.get("quantity"))
            if quantity is None or quantity <= 0:
                quantity = float(rfq_items[rfq_item_id]["quantity"])
            vat_rate = max(0.0, parse_float(raw.get("vat_rate")) or 0.0)
            lines.append(
                {
                    "rfq_item_id": rfq_item_id,
                    "quantity": quantity,
                    "unit_price": unit_price,
                    "vat_rate": vat_rate,
                    "total_price": _offer_line_total(quantity, unit_price, vat_rate),
                }
            )
        if not lines:
            raise UserActionError(code="invalid_payload", details=["items"])

        total_amount = round(sum(line["total_price"] for line in lines), 2)
        round_no = int(rfq.get("negotiation_round") or 1)
        previous = repository.find_offer(db, int(invitation["id"]), round_no)
        offer_id = repository.save_offer(
            db,
            rfq_id=int(rfq["id"]),
            rfq_supplier_id=int(invitation["id"]),
            round_no=round_no,
            total_amount=total_amount,
            currency=clean_text(submit_input.currency) or "TRY",
            notes=clean_text(submit_input.notes),
        )
        repository.replace_offer_items(db, offer_id, lines)
        repository.update_invitation(db, int(invitation["id"]), {"stage": "OFFERED"})
        db.commit()
        record_audit(
            db,
            tenant_id=tenant_id,
            action="UPDATE" if previous else "CREATE",
            entity_type="Rfq",
            entity_id=rfq["id"],
            old_data={"total_amount": previous.get("total_amount")} if previous else None,
            new_data={
                "offer_id": offer_id,
                "round": round_no,
                "total_amount": total_amount,
                "supplier_email": invitation.get("email"),
            },
        )
        self.event_bus.publish(
            OfferSubmitted(tenant_id=tenant_id, rfq_id=int(rfq["id"]), offer_id=offer_id, total_amount=total_amount)
        )
        return ServiceOutput(
            payload={
                "ok": True,
                "offer_id": offer_id,
                "total_amount": total_amount,
                "message": success_message("offer_submitted"),
            }
        )

    def finalize(self, db, *, actor: Actor, rfq_id: int | None, offer_id: int | None) -> ServiceOutput:
        if not rfq_id or not offer_id:
            raise ValidationError(code="missing_params", details=["rfq_id", "offer_id"])
        repository = RfqRepository(tenant_id=actor.tenant_id)
        rfq = self._load(db, repository, rfq_id)
        if rfq["status"] not in FINALIZABLE_RFQ_STATUSES:
            raise UserActionError(code="rfq_not_active")
        offer = repository.get_offer(db, offer_id)
        if not offer:
            raise NotFoundError(code="offer_not_found")
        if int(offer["rfq_id"]) != int(rfq_id):
            raise UserActionError(code="mismatch")

        invitation = repository.get_invitation(db, int(offer["rfq_supplier_id"])) or {}
        supplier_id = self._ensure_supplier(db, actor.tenant_id, repository, invitation)

        order_repository = OrderRepository(tenant_id=actor.tenant_id)
        barcode = unique_order_barcode(db, order_repository)
        request_ids = repository.request_ids(db, rfq_id)
        order_id = order_repository.create(
            db,
            barcode=barcode,
            supplier_id=supplier_id,
            request_id=request_ids[0] if request_ids else None,
            rfq_id=rfq_id,
            responsible_user_id=actor.user_id,
            realized_total=float(offer["total_amount"] or 0),
            currency=offer.get("currency") or "TRY",
        )
        for line in repository.list_offer_items(db, offer_id):
            order_repository.add_item(
                db,
                order_id,
                {
                    "name": line.get("item_name") or f"Kalem {line['rfq_item_id']}",
                    "quantity": float(line["quantity"]),
                    "unit": line.get("item_unit") or "adet",
                    "unit_price": float(line["unit_price"]),
                },
            )
        repository.set_status(db, rfq_id, "COMPLETED")
        repository.mark_winner(db, offer_id)
        RequestRepository(tenant_id=actor.tenant_id).mark_status(db, request_ids, "ordered")
        status_events = StatusEventRepository(tenant_id=actor.tenant_id)
        status_events.add_event(
            db,
            entity="rfq",
            entity_id=rfq_id,
            from_status=rfq["status"],
            to_status="COMPLETED",
            reason="rfq_finalized",
            actor_user_id=actor.user_id,
        )
        status_events.add_event(
            db,
            entity="order",
            entity_id=order_id,
            from_status=None,
            to_status="pending",
            reason="order_created_from_rfq",
            actor_user_id=actor.user_id,
        )
        db.commit()
        self.event_bus.publish(OrderCreated(tenant_id=actor.tenant_id, order_id=order_id, barcode=barcode, source="rfq"))
        return ServiceOutput(
            payload={
                "ok": True,
                "order_id": order_id,
                "barcode": barcode,
                "message": success_message("rfq_finalized"),
            }
        )

    @staticmethod
    def _load(db, repository: RfqRepository, rfq_id: int) -> dict:
        rfq = repository.get_by_id(db, rfq_id)
        if not rfq:
            raise NotFoundError(code="rfq_not_found")
        return rfq

    @staticmethod
    def _load_invitation(db, token: str) -> dict:
        invitation = find_invitation_by_token(db, token)
        if not invitation:
            raise NotFoundError(code="invitation_not_found")
        return invitation

    @staticmethod
    def _token_expired(invitation: Dict[str, Any]) -> bool:
        expiry = parse_db_timestamp(invitation.get("token_expiry"))
        return expiry is None or expiry < utc_now()

    @staticmethod
    def _resolve_invitees(db, tenant_id: str, create_input: RfqCreateInput) -> List[Dict[str, Any]]:
        supplier_repository = SupplierRepository(tenant_id=tenant_id)
        invitees: List[Dict[str, Any]] = []
        seen = set()
        for invite in create_input.suppliers:
            supplier = supplier_repository.get_by_id(db, invite.supplier_id) if invite.supplier_id else None
            email = clean_text(invite.email) or clean_text((supplier or {}).get("email"))
            if not email or not is_valid_email(email) or email.lower() in seen:
                continue
            seen.add(email.lower())
            invitees.append(
                {
                    "supplier_id": int(supplier["id"]) if supplier else None,
                    "email": email,
                    "name": clean_text(invite.name) or (supplier or {}).get("name"),
                    "contact_name": clean_text(invite.contact_name) or (supplier or {}).get("contact_name"),
                }
            )
        return invitees

    @staticmethod
    def _ensure_supplier(db, tenant_id: str, repository: RfqRepository, invitation: Dict[str, Any]) -> int | None:
        if invitation.get("supplier_id"):
            return int(invitation["supplier_id"])
        email = clean_text(invitation.get("email"))
        if not email:
            return None
        supplier_repository = SupplierRepository(tenant_id=tenant_id)
        supplier = supplier_repository.find_by_email(db, email)
        if supplier:
            supplier_id = int(supplier["id"])
        else:
            supplier_id = supplier_repository.create(
                db,
                values={
                    "name": invitation.get("company_name") or email,
                    "email": email.lower(),
                    "contact_name": invitation.get("contact_name"),
                    "registration_status": "pending",
                },
            )
        repository.update_invitation(db, int(invitation["id"]), {"supplier_id": supplier_id})
        return supplier_id
