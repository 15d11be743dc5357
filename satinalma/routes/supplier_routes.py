from __future__ import annotations

from flask import Blueprint, jsonify, request

from satinalma.application.supplier_service import SupplierService
from satinalma.db import get_db
from satinalma.policies import require_permission
from satinalma.routes.common import json_payload, parse_list_query, tenant_id


suppliers_bp = Blueprint("suppliers", __name__)

_SUPPLIER_SERVICE = SupplierService()


@suppliers_bp.route("/api/suppliers", methods=["GET", "POST"])
def suppliers_api():
    db = get_db()
    if request.method == "POST":
        require_permission("supplier:create")
        result = _SUPPLIER_SERVICE.create(db, tenant_id=tenant_id(), payload=json_payload())
        return jsonify(result.payload), result.status_code

    require_permission("supplier:read")
    query = parse_list_query(request.args, filters=("active", "category_id"))
    result = _SUPPLIER_SERVICE.list(db, tenant_id=tenant_id(), query=query)
    return jsonify(result.payload), result.status_code


@suppliers_bp.route("/api/suppliers/<int:supplier_id>", methods=["GET", "PATCH", "DELETE"])
def supplier_detail(supplier_id: int):
    db = get_db()
    if request.method == "PATCH":
        require_permission("supplier:edit")
        result = _SUPPLIER_SERVICE.update(db, tenant_id=tenant_id(), supplier_id=supplier_id, payload=json_payload())
    elif request.method == "DELETE":
        require_permission("supplier:edit")
        result = _SUPPLIER_SERVICE.delete(db, tenant_id=tenant_id(), supplier_id=supplier_id)
    else:
        require_permission("supplier:read")
        result = _SUPPLIER_SERVICE.get(db, tenant_id=tenant_id(), supplier_id=supplier_id)
    return jsonify(result.payload), result.status_code


@suppliers_bp.route("/api/suppliers/<int:supplier_id>/approve", methods=["POST"])
def approve_supplier(supplier_id: int):
    require_permission("supplier:approve")
    result = _SUPPLIER_SERVICE.set_registration_status(
        get_db(),
        tenant_id=tenant_id(),
        supplier_id=supplier_id,
        status="approved",
    )
    return jsonify(result.payload), result.status_code


@suppliers_bp.route("/api/suppliers/<int:supplier_id>/reject", methods=["POST"])
def reject_supplier(supplier_id: int):
    require_permission("supplier:approve")
    result = _SUPPLIER_SERVICE.set_registration_status(
        get_db(),
        tenant_id=tenant_id(),
        supplier_id=supplier_id,
        status="rejected",
    )
    return jsonify(result.payload), result.status_code


@suppliers_bp.route("/api/suppliers/<int:supplier_id>/score", methods=["GET"])
def supplier_score(supplier_id: int):
    require_permission("evaluation:read")
    result = _SUPPLIER_SERVICE.score(get_db(), tenant_id=tenant_id(), supplier_id=supplier_id)
    return jsonify(result.payload), result.status_code


@suppliers_bp.route("/api/categories", methods=["GET", "POST"])
def categories_api():
    db = get_db()
    if request.method == "POST":
        require_permission("supplier:create")
        result = _SUPPLIER_SERVICE.create_category(db, tenant_id=tenant_id(), name=json_payload().get("name"))
    else:
        require_permission("supplier:read")
        result = _SUPPLIER_SERVICE.list_categories(db, tenant_id=tenant_id())
    return jsonify(result.payload), result.status_code
