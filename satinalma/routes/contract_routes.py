from __future__ import annotations

from flask import Blueprint, jsonify, request

from satinalma.application.contract_service import ContractService
from satinalma.application.invoice_service import InvoiceService
from satinalma.db import get_db
from satinalma.policies import require_permission
from satinalma.routes.common import current_actor, json_payload, parse_list_query, tenant_id


contracts_bp = Blueprint("contracts", __name__)

_CONTRACT_SERVICE = ContractService()
_INVOICE_SERVICE = InvoiceService()


@contracts_bp.route("/api/contracts", methods=["GET", "POST"])
def contracts_api():
    db = get_db()
    if request.method == "POST":
        require_permission("contract:create")
        result = _CONTRACT_SERVICE.create(db, actor=current_actor(), payload=json_payload())
        return jsonify(result.payload), result.status_code

    require_permission("contract:read")
    query = parse_list_query(request.args, filters=("expiry",))
    result = _CONTRACT_SERVICE.list(db, tenant_id=tenant_id(), query=query)
    return jsonify(result.payload), result.status_code


@contracts_bp.route("/api/contracts/<int:contract_id>", methods=["GET", "PATCH", "DELETE"])
def contract_detail(contract_id: int):
    db = get_db()
    if request.method == "PATCH":
        require_permission("contract:edit")
        result = _CONTRACT_SERVICE.update(db, actor=current_actor(), contract_id=contract_id, payload=json_payload())
    elif request.method == "DELETE":
        require_permission("contract:edit")
        result = _CONTRACT_SERVICE.delete(db, actor=current_actor(), contract_id=contract_id)
    else:
        require_permission("contract:read")
        result = _CONTRACT_SERVICE.get(db, tenant_id=tenant_id(), contract_id=contract_id)
    return jsonify(result.payload), result.status_code


@contracts_bp.route("/api/invoices", methods=["GET", "POST"])
def invoices_api():
    db = get_db()
    if request.method == "POST":
        require_permission("invoice:create")
        result = _INVOICE_SERVICE.create(db, actor=current_actor(), payload=json_payload())
        return jsonify(result.payload), result.status_code

    require_permission("invoice:read")
    query = parse_list_query(request.args, filters=("due_only",))
    result = _INVOICE_SERVICE.list(db, tenant_id=tenant_id(), query=query)
    return jsonify(result.payload), result.status_code


@contracts_bp.route("/api/invoices/<int:invoice_id>", methods=["GET", "PATCH"])
def invoice_detail(invoice_id: int):
    db = get_db()
    if request.method == "PATCH":
        require_permission("invoice:edit")
        result = _INVOICE_SERVICE.update(db, tenant_id=tenant_id(), invoice_id=invoice_id, payload=json_payload())
    else:
        require_permission("invoice:read")
        result = _INVOICE_SERVICE.get(db, tenant_id=tenant_id(), invoice_id=invoice_id)
    return jsonify(result.payload), result.status_code
