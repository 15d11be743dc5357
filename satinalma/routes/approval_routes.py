from __future__ import annotations

from flask import Blueprint, jsonify, request

from satinalma.application.approval_service import ApprovalService
from satinalma.db import get_db
from satinalma.policies import require_permission
from satinalma.routes.common import current_actor, json_payload, parse_int_arg, tenant_id


approvals_bp = Blueprint("approvals", __name__, url_prefix="/api")

_APPROVAL_SERVICE = ApprovalService()


@approvals_bp.route("/approval-workflows", methods=["GET", "POST"])
def workflows_api():
    db = get_db()
    if request.method == "POST":
        require_permission("approval:manage")
        result = _APPROVAL_SERVICE.create_workflow(db, actor=current_actor(), payload=json_payload())
    else:
        require_permission("approval:read")
        result = _APPROVAL_SERVICE.list_workflows(db, tenant_id=tenant_id())
    return jsonify(result.payload), result.status_code


@approvals_bp.route("/approval-workflows/init", methods=["POST"])
def workflows_init():
    require_permission("approval:manage")
    result = _APPROVAL_SERVICE.init_defaults(get_db(), actor=current_actor())
    return jsonify(result.payload), result.status_code


@approvals_bp.route("/approval-workflows/<int:workflow_id>", methods=["GET", "PUT", "DELETE"])
def workflow_detail(workflow_id: int):
    db = get_db()
    if request.method == "GET":
        require_permission("approval:read")
        result = _APPROVAL_SERVICE.get_workflow(db, tenant_id=tenant_id(), workflow_id=workflow_id)
    elif request.method == "DELETE":
        require_permission("approval:manage")
        result = _APPROVAL_SERVICE.delete_workflow(db, actor=current_actor(), workflow_id=workflow_id)
    else:
        require_permission("approval:manage")
        result = _APPROVAL_SERVICE.update_workflow(
            db, actor=current_actor(), workflow_id=workflow_id, payload=json_payload()
        )
    return jsonify(result.payload), result.status_code


@approvals_bp.route("/approvals/pending", methods=["GET"])
def pending_approvals():
    require_permission("approval:read")
    limit = parse_int_arg(request.args.get("limit"), default=50, min_value=1, max_value=200)
    result = _APPROVAL_SERVICE.pending(get_db(), actor=current_actor(), limit=limit)
    return jsonify(result.payload), result.status_code


@approvals_bp.route("/approvals/<entity_type>/<int:entity_id>", methods=["GET", "POST"])
def approval_api(entity_type: str, entity_id: int):
    db = get_db()
    if request.method == "POST":
        require_permission("approval:decide")
        result = _APPROVAL_SERVICE.decide(
            db, actor=current_actor(), entity_type=entity_type, entity_id=entity_id, payload=json_payload()
        )
    else:
        require_permission("approval:read")
        result = _APPROVAL_SERVICE.status(db, actor=current_actor(), entity_type=entity_type, entity_id=entity_id)
    return jsonify(result.payload), result.status_code
