from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from satinalma.application.meeting_service import MeetingService, meeting_input_from_payload
from satinalma.db import get_db
from satinalma.policies import require_permission
from satinalma.realtime import event_stream, get_hub, meeting_channel, sse_response
from satinalma.routes.common import current_actor, json_payload, parse_list_query, tenant_id


meetings_bp = Blueprint("meetings", __name__, url_prefix="/api/meetings")

_MEETING_SERVICE = MeetingService()


@meetings_bp.route("", methods=["GET", "POST"])
def meetings_api():
    db = get_db()
    if request.method == "POST":
        require_permission("meeting:create")
        create_input = meeting_input_from_payload(json_payload())
        result = _MEETING_SERVICE.create(db, actor=current_actor(), create_input=create_input)
        return jsonify(result.payload), result.status_code

    require_permission("meeting:read")
    result = _MEETING_SERVICE.list(db, tenant_id=tenant_id(), query=parse_list_query(request.args))
    return jsonify(result.payload), result.status_code


@meetings_bp.route("/<int:meeting_id>", methods=["GET", "PATCH"])
def meeting_detail(meeting_id: int):
    db = get_db()
    if request.method == "PATCH":
        require_permission("meeting:edit")
        result = _MEETING_SERVICE.update(db, tenant_id=tenant_id(), meeting_id=meeting_id, payload=json_payload())
    else:
        require_permission("meeting:read")
        result = _MEETING_SERVICE.get(db, tenant_id=tenant_id(), meeting_id=meeting_id)
    return jsonify(result.payload), result.status_code


@meetings_bp.route("/<int:meeting_id>/notes", methods=["POST"])
def meeting_notes(meeting_id: int):
    require_permission("meeting:read")
    result = _MEETING_SERVICE.add_note(
        get_db(),
        actor=current_actor(),
        meeting_id=meeting_id,
        body=json_payload().get("body"),
    )
    return jsonify(result.payload), result.status_code


@meetings_bp.route("/<int:meeting_id>/stream", methods=["GET"])
def meeting_stream(meeting_id: int):
    require_permission("meeting:read")
    _MEETING_SERVICE.ensure_exists(get_db(), tenant_id=tenant_id(), meeting_id=meeting_id)
    stream = event_stream(
        get_hub(),
        meeting_channel(meeting_id),
        ping_seconds=float(current_app.config.get("SSE_PING_SECONDS", 15)),
        retry_ms=int(current_app.config.get("SSE_RETRY_MS", 5000)),
    )
    return sse_response(stream)
