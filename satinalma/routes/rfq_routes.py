from __future__ import annotations

from typing import Any, Dict, List

from flask import Blueprint, jsonify, request

from satinalma.application.rfq_service import RfqService
from satinalma.db import get_db, to_db_timestamp
from satinalma.domain.contracts import OfferSubmitInput, RfqCreateInput, RfqSupplierInvite
from satinalma.errors import ValidationError
from satinalma.policies import require_permission
from satinalma.procurement.validators import clean_text, parse_datetime
from satinalma.routes.common import (
    current_actor,
    json_payload,
    normalize_int_list,
    parse_list_query,
    parse_optional_int,
    tenant_id,
)


rfqs_bp = Blueprint("rfqs", __name__)

_RFQ_SERVICE = RfqService()


def _parse_deadline(value: Any) -> str | None:
    text = clean_text(value)
    if not text:
        return None
    # a bare date keeps the whole day open
    parsed = parse_datetime(f"{text}T23:59:59" if len(text) == 10 else text)
    if parsed is None:
        raise ValidationError(code="invalid_date", details=["deadline"])
    return to_db_timestamp(parsed)


def _parse_invites(raw_suppliers: Any) -> List[RfqSupplierInvite]:
    invites: List[RfqSupplierInvite] = []
    for raw in raw_suppliers if isinstance(raw_suppliers, list) else []:
        if not isinstance(raw, dict):
            continue
        invites.append(
            RfqSupplierInvite(
                email=clean_text(raw.get("email")) or "",
                supplier_id=parse_optional_int(raw.get("id") or raw.get("supplier_id")),
                name=clean_text(raw.get("name")),
                contact_name=clean_text(raw.get("contact_name")),
            )
        )
    return invites


def _parse_item_categories(raw: Any) -> Dict[int, int]:
    categories: Dict[int, int] = {}
    if not isinstance(raw, dict):
        return categories
    for item_id, category_id in raw.items():
        parsed_item = parse_optional_int(item_id)
        parsed_category = parse_optional_int(category_id)
        if parsed_item and parsed_category:
            categories[parsed_item] = parsed_category
    return categories


@rfqs_bp.route("/api/rfqs", methods=["GET", "POST"])
def rfqs_api():
    db = get_db()
    if request.method == "POST":
        require_permission("rfq:manage")
        payload = json_payload()
        result = _RFQ_SERVICE.create(
            db,
            actor=current_actor(),
            create_input=RfqCreateInput(
                title=clean_text(payload.get("title")) or "",
                request_ids=normalize_int_list(payload.get("request_ids")),
                suppliers=_parse_invites(payload.get("suppliers")),
                deadline=_parse_deadline(payload.get("deadline")),
                item_categories=_parse_item_categories(payload.get("item_categories")),
            ),
        )
        return jsonify(result.payload), result.status_code

    require_permission("rfq:read")
    result = _RFQ_SERVICE.list(db, tenant_id=tenant_id(), query=parse_list_query(request.args))
    return jsonify(result.payload), result.status_code


@rfqs_bp.route("/api/rfqs/<int:rfq_id>", methods=["GET"])
def rfq_detail(rfq_id: int):
    require_permission("rfq:read")
    result = _RFQ_SERVICE.get(get_db(), tenant_id=tenant_id(), rfq_id=rfq_id)
    return jsonify(result.payload), result.status_code


@rfqs_bp.route("/api/rfqs/<int:rfq_id>/status", methods=["PATCH"])
def rfq_status(rfq_id: int):
    require_permission("rfq:manage")
    status = (clean_text(json_payload().get("status")) or "").upper()
    result = _RFQ_SERVICE.update_status(get_db(), actor=current_actor(), rfq_id=rfq_id, status=status)
    return jsonify(result.payload), result.status_code


@rfqs_bp.route("/api/rfqs/<int:rfq_id>/publish", methods=["POST"])
def rfq_publish(rfq_id: int):
    require_permission("rfq:manage")
    result = _RFQ_SERVICE.publish(get_db(), actor=current_actor(), rfq_id=rfq_id)
    return jsonify(result.payload), result.status_code


@rfqs_bp.route("/api/rfqs/finalize", methods=["POST"])
def rfq_finalize():
    require_permission("rfq:manage")
    payload = json_payload()
    result = _RFQ_SERVICE.finalize(
        get_db(),
        actor=current_actor(),
        rfq_id=parse_optional_int(payload.get("rfq_id")),
        offer_id=parse_optional_int(payload.get("offer_id")),
    )
    return jsonify(result.payload), result.status_code


@rfqs_bp.route("/api/portal/rfq/<string:token>", methods=["GET", "POST"])
def rfq_portal(token: str):
    db = get_db()
    if request.method == "POST":
        payload = json_payload()
        result = _RFQ_SERVICE.portal_submit(
            db,
            token=token,
            submit_input=OfferSubmitInput(
                items=payload.get("items") if isinstance(payload.get("items"), list) else [],
                currency=clean_text(payload.get("currency")) or "TRY",
                notes=clean_text(payload.get("notes")),
            ),
        )
        return jsonify(result.payload), result.status_code

    result = _RFQ_SERVICE.portal_get(db, token=token)
    return jsonify(result.payload), result.status_code
