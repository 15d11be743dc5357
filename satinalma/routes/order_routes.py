from __future__ import annotations

from flask import Blueprint, jsonify, request

from satinalma.application.order_service import OrderService
from satinalma.db import get_db
from satinalma.policies import require_permission
from satinalma.routes.common import current_actor, json_payload, parse_list_query, tenant_id


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

_ORDER_SERVICE = OrderService()


@orders_bp.route("", methods=["GET", "POST"])
def orders_api():
    db = get_db()
    if request.method == "POST":
        require_permission("order:create")
        result = _ORDER_SERVICE.create(db, actor=current_actor(), payload=json_payload())
        return jsonify(result.payload), result.status_code

    require_permission("order:read")
    query = parse_list_query(request.args, filters=("mode", "supplier_id"))
    result = _ORDER_SERVICE.list(db, tenant_id=tenant_id(), query=query)
    return jsonify(result.payload), result.status_code


@orders_bp.route("/<int:order_id>", methods=["GET", "PATCH", "DELETE"])
def order_detail(order_id: int):
    db = get_db()
    if request.method == "PATCH":
        require_permission("order:edit")
        result = _ORDER_SERVICE.update(db, actor=current_actor(), order_id=order_id, payload=json_payload())
    elif request.method == "DELETE":
        require_permission("order:delete")
        result = _ORDER_SERVICE.delete(db, tenant_id=tenant_id(), order_id=order_id)
    else:
        require_permission("order:read")
        result = _ORDER_SERVICE.get(db, tenant_id=tenant_id(), order_id=order_id)
    return jsonify(result.payload), result.status_code


@orders_bp.route("/<int:order_id>/notify", methods=["POST"])
def notify_order_supplier(order_id: int):
    require_permission("order:edit")
    result = _ORDER_SERVICE.notify_supplier(get_db(), tenant_id=tenant_id(), order_id=order_id)
    return jsonify(result.payload), result.status_code


@orders_bp.route("/<int:order_id>/match", methods=["GET"])
def order_match(order_id: int):
    require_permission("order:read")
    result = _ORDER_SERVICE.match(get_db(), tenant_id=tenant_id(), order_id=order_id)
    return jsonify(result.payload), result.status_code
