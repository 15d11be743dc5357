from __future__ import annotations

from flask import Blueprint, jsonify, request

from satinalma.application.request_service import RequestService
from satinalma.db import get_db
from satinalma.domain.contracts import RequestCreateInput
from satinalma.policies import require_permission
from satinalma.procurement.validators import clean_text, parse_float
from satinalma.routes.common import (
    current_actor,
    json_payload,
    parse_list_query,
    parse_optional_int,
    tenant_id,
)


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")

_REQUEST_SERVICE = RequestService()


@requests_bp.route("", methods=["GET"])
def list_requests():
    require_permission("request:read")
    query = parse_list_query(request.args)
    result = _REQUEST_SERVICE.list(get_db(), tenant_id=tenant_id(), query=query)
    return jsonify(result.payload), result.status_code


@requests_bp.route("", methods=["POST"])
def create_request():
    require_permission("request:create")
    payload = json_payload()
    items = payload.get("items") if isinstance(payload.get("items"), list) else []
    result = _REQUEST_SERVICE.create(
        get_db(),
        actor=current_actor(),
        create_input=RequestCreateInput(
            barcode=clean_text(payload.get("barcode")) or "",
            subject=clean_text(payload.get("subject")) or "",
            budget=parse_float(payload.get("budget")),
            unit_name=clean_text(payload.get("unit_name")),
            unit_email=clean_text(payload.get("unit_email")),
            responsible_user_id=parse_optional_int(payload.get("responsible_user_id")),
            items=items,
        ),
    )
    return jsonify(result.payload), result.status_code


@requests_bp.route("/<int:request_id>", methods=["GET"])
def get_request(request_id: int):
    require_permission("request:read")
    result = _REQUEST_SERVICE.get(get_db(), tenant_id=tenant_id(), request_id=request_id)
    return jsonify(result.payload), result.status_code


@requests_bp.route("/<int:request_id>/status", methods=["PATCH"])
def update_request_status(request_id: int):
    require_permission("request:edit")
    payload = json_payload()
    result = _REQUEST_SERVICE.update_status(
        get_db(),
        actor=current_actor(),
        request_id=request_id,
        status=clean_text(payload.get("status")) or "",
        reason=clean_text(payload.get("reason")),
    )
    return jsonify(result.payload), result.status_code
