from __future__ import annotations

from flask import Blueprint, jsonify, request

from satinalma.application.delivery_service import DeliveryService, delivery_lines_from_payload
from satinalma.db import get_db
from satinalma.domain.contracts import DeliveryRecordInput
from satinalma.errors import UserActionError
from satinalma.policies import require_permission
from satinalma.procurement.validators import clean_text
from satinalma.routes.common import current_actor, json_payload, parse_optional_int, tenant_id


deliveries_bp = Blueprint("deliveries", __name__)

_DELIVERY_SERVICE = DeliveryService()

DELIVERY_ACTIONS = {"create-token", "send-email"}


@deliveries_bp.route("/api/deliveries", methods=["GET", "POST"])
def deliveries_api():
    db = get_db()
    if request.method == "GET":
        require_permission("delivery:read")
        result = _DELIVERY_SERVICE.list(
            db,
            tenant_id=tenant_id(),
            order_id=parse_optional_int(request.args.get("order_id")),
            status=clean_text(request.args.get("status")),
        )
        return jsonify(result.payload), result.status_code

    require_permission("delivery:create")
    payload = json_payload()
    action = clean_text(payload.get("action"))
    if action and action not in DELIVERY_ACTIONS:
        raise UserActionError(code="invalid_payload", details={"action": action})

    if action == "create-token":
        result = _DELIVERY_SERVICE.create_token(
            db,
            tenant_id=tenant_id(),
            order_id=parse_optional_int(payload.get("order_id")),
        )
    elif action == "send-email":
        result = _DELIVERY_SERVICE.send_email(
            db,
            tenant_id=tenant_id(),
            token=payload.get("token"),
            email=payload.get("email"),
        )
    else:
        result = _DELIVERY_SERVICE.record(
            db,
            actor=current_actor(),
            record_input=DeliveryRecordInput(
                order_id=parse_optional_int(payload.get("order_id")) or 0,
                lines=delivery_lines_from_payload(payload.get("items")),
                code=clean_text(payload.get("code")),
                received_by=clean_text(payload.get("received_by")),
                notes=clean_text(payload.get("notes")),
                delivered_at=clean_text(payload.get("delivered_at")),
            ),
        )
    return jsonify(result.payload), result.status_code


@deliveries_bp.route("/api/deliveries/<int:delivery_id>", methods=["PATCH"])
def delivery_status(delivery_id: int):
    require_permission("delivery:edit")
    result = _DELIVERY_SERVICE.update_status(
        get_db(),
        actor=current_actor(),
        delivery_id=delivery_id,
        status=clean_text(json_payload().get("status")),
    )
    return jsonify(result.payload), result.status_code


@deliveries_bp.route("/api/portal/delivery/<string:token>", methods=["GET", "POST"])
def delivery_portal(token: str):
    db = get_db()
    if request.method == "POST":
        result = _DELIVERY_SERVICE.portal_record(db, token=token, payload=json_payload())
    else:
        result = _DELIVERY_SERVICE.portal_get(db, token=token)
    return jsonify(result.payload), result.status_code
