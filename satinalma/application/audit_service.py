from __future__ import annotations

import json
import logging
from typing import Any, Dict

from flask import has_request_context, request

from satinalma.domain.contracts import ServiceOutput
from satinalma.infrastructure.repositories.audit_repository import AuditRepository
from satinalma.ui_strings import audit_action_label, audit_entity_label


logger = logging.getLogger("satinalma.audit")

AUDIT_ACTIONS = ("CREATE", "UPDATE", "DELETE", "VIEW", "LOGIN", "LOGOUT", "APPROVE", "REJECT", "EXPORT", "IMPORT")

_IGNORED_CHANGE_FIELDS = {"password_hash", "password", "created_at", "updated_at", "id"}


def client_ip() -> str:
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return forwarded or (request.headers.get("X-Real-IP") or "").strip() or request.remote_addr or "unknown"


def compute_changes(old: Dict[str, Any] | None, new: Dict[str, Any] | None) -> Dict[str, Dict[str, Any]] | None:
    """Returns {"old": ..., "new": ...} for the fields whose values differ."""
    old = old or {}
    new = new or {}
    before: Dict[str, Any] = {}
    after: Dict[str, Any] = {}
    for key, value in new.items():
        if key in _IGNORED_CHANGE_FIELDS:
            continue
        if old.get(key) != value:
            before[key] = old.get(key)
            after[key] = value
    if not after:
        return None
    return {"old": before, "new": after}


def _dump(data: Dict[str, Any] | None) -> str | None:
    if data is None:
        return None
    return json.dumps(data, ensure_ascii=False, default=str)


def record_audit(
    db,
    *,
    tenant_id: str,
    action: str,
    entity_type: str,
    entity_id: Any = None,
    user_id: int | None = None,
    old_data: Dict[str, Any] | None = None,
    new_data: Dict[str, Any] | None = None,
) -> int | None:
    """Writes an audit row; failures are logged and never reach the caller."""
    ip_address = client_ip() if has_request_context() else None
    user_agent = request.headers.get("User-Agent") if has_request_context() else None
    try:
        log_id = AuditRepository(tenant_id=tenant_id).add(
            db,
            action=action,
            entity_type=entity_type,
            entity_id=None if entity_id is None else str(entity_id),
            user_id=user_id,
            old_data=_dump(old_data),
            new_data=_dump(new_data),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.commit()
        return log_id
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("audit_log_failed", extra={"audit_action": action, "entity_type": entity_type})
        return None


def _load_json(value: Any) -> Any:
    if value in (None, ""):
        return None
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return None


class AuditService:
    def list(self, db, *, tenant_id: str, filters: Dict[str, Any], page: int, page_size: int) -> ServiceOutput:
        result = AuditRepository(tenant_id=tenant_id).list_page(db, filters=filters, page=page, page_size=page_size)
        items = []
        for row in result.items:
            item = dict(row)
            item["old_data"] = _load_json(row.get("old_data"))
            item["new_data"] = _load_json(row.get("new_data"))
            item["action_label"] = audit_action_label(row.get("action"))
            item["entity_label"] = audit_entity_label(row.get("entity_type"))
            items.append(item)
        return ServiceOutput(
            payload={
                "items": items,
                "pagination": {
                    "page": result.page,
                    "limit": result.page_size,
                    "total": result.total,
                    "total_pages": result.total_pages,
                },
            }
        )
