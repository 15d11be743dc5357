from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from satinalma.application.notification_service import NotificationService
from satinalma.db import get_db
from satinalma.infrastructure.repositories.notification_repository import PREFERENCE_FLAGS
from satinalma.realtime import NOTIFICATIONS_CHANNEL, HubMessage, event_stream, get_hub, sse_response
from satinalma.routes.common import json_payload, parse_flag, parse_int_arg, require_user_id, tenant_id


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")

_NOTIFICATION_SERVICE = NotificationService()


@notifications_bp.route("", methods=["GET"])
def list_notifications():
    user_id = require_user_id()
    result = _NOTIFICATION_SERVICE.list_for_user(
        get_db(),
        tenant_id=tenant_id(),
        user_id=user_id,
        limit=parse_int_arg(request.args.get("limit"), default=20, min_value=1, max_value=100),
        unread_only=parse_flag(request.args.get("unread")),
    )
    return jsonify(result.payload), result.status_code


@notifications_bp.route("/<int:notification_id>/read", methods=["POST"])
def mark_notification_read(notification_id: int):
    user_id = require_user_id()
    result = _NOTIFICATION_SERVICE.mark_read(
        get_db(),
        tenant_id=tenant_id(),
        user_id=user_id,
        notification_id=notification_id,
    )
    return jsonify(result.payload), result.status_code


@notifications_bp.route("/read-all", methods=["POST"])
def mark_all_notifications_read():
    user_id = require_user_id()
    result = _NOTIFICATION_SERVICE.mark_all_read(get_db(), tenant_id=tenant_id(), user_id=user_id)
    return jsonify(result.payload), result.status_code


@notifications_bp.route("/prefs", methods=["GET", "PATCH"])
def notification_preferences():
    user_id = require_user_id()
    db = get_db()
    if request.method == "PATCH":
        payload = json_payload()
        flags = {key: parse_flag(payload.get(key)) for key in PREFERENCE_FLAGS if key in payload}
        result = _NOTIFICATION_SERVICE.update_preferences(db, tenant_id=tenant_id(), user_id=user_id, flags=flags)
    else:
        result = _NOTIFICATION_SERVICE.get_preferences(db, tenant_id=tenant_id(), user_id=user_id)
    return jsonify(result.payload), result.status_code


@notifications_bp.route("/stream", methods=["GET"])
def notification_stream():
    user_id = require_user_id()

    def _for_current_user(message: HubMessage) -> bool:
        return str((message.payload or {}).get("user_id")) == str(user_id)

    stream = event_stream(
        get_hub(),
        NOTIFICATIONS_CHANNEL,
        accept=_for_current_user,
        ping_seconds=float(current_app.config.get("SSE_PING_SECONDS", 15)),
        retry_ms=int(current_app.config.get("SSE_RETRY_MS", 5000)),
        named_events=False,
    )
    return sse_response(stream)
