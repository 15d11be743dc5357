from __future__ import annotations

import logging
from typing import Any, Dict, List

from satinalma.application.audit_service import record_audit
from satinalma.application.notification_service import NotificationService
from satinalma.domain.contracts import Actor, ServiceOutput
from satinalma.errors import ConflictError, NotFoundError, PermissionError, UserActionError, ValidationError
from satinalma.infrastructure.repositories.approval_repository import ApprovalRepository
from satinalma.infrastructure.repositories.order_repository import OrderRepository
from satinalma.infrastructure.repositories.request_repository import RequestRepository
from satinalma.infrastructure.repositories.status_event_repository import StatusEventRepository
from satinalma.policies import normalize_role
from satinalma.procurement.approval_flow import (
    APPROVAL_ACTIONS,
    ENTITY_TYPES,
    applicable_steps,
    can_decide,
    current_step,
    overall_status,
    step_statuses,
)
from satinalma.procurement.validators import clean_text, parse_float, parse_positive_int
from satinalma.ui_strings import FRIENDLY_TERMS, success_message


logger = logging.getLogger("satinalma.approvals")

AUTO_APPROVE_COMMENT = "Otomatik onay"

_AUDIT_ENTITY = {"request": "Request", "order": "Order"}

DEFAULT_WORKFLOWS: List[Dict[str, Any]] = [
    {
        "name": "request_approval",
        "display_name": "Talep Onay Akışı",
        "entity_type": "request",
        "steps": [
            {
                "name": "Birim Müdürü Onayı",
                "description": "Talep eden birimin müdürü onaylar.",
                "approver_role": "unit_manager",
            },
            {
                "name": "Genel Müdür Onayı",
                "description": "Bütçe limitini aşan talepler için genel müdür onayı.",
                "approver_role": "admin",
                "budget_limit": 50000,
            },
            {
                "name": "Satınalma Havuzuna Gönderim",
                "description": "Onaylanan talep satınalma havuzuna düşer.",
                "approver_role": "purchasing_manager",
                "auto_approve": True,
            },
        ],
    },
    {
        "name": "order_approval",
        "display_name": "Sipariş Onay Akışı",
        "entity_type": "order",
        "steps": [
            {
                "name": "Satınalma Onayı",
                "description": "Satınalma müdürü siparişi onaylar.",
                "approver_role": "purchasing_manager",
            },
            {
                "name": "Finans Onayı",
                "description": "Finans birimi ödeme planını onaylar.",
                "approver_role": "admin",
            },
        ],
    },
]


def normalize_entity_type(value: Any) -> str:
    entity_type = str(value or "").strip().lower()
    if entity_type not in ENTITY_TYPES:
        raise UserActionError(code="invalid_entity_type", details={"entity_type": value})
    return entity_type


def steps_from_payload(raw: Any) -> tuple[List[Dict[str, Any]], List[str]]:
    if not isinstance(raw, list):
        return [], ["steps"]
    steps: List[Dict[str, Any]] = []
    errors: List[str] = []
    for index, item in enumerate(raw, start=1):
        item = item if isinstance(item, dict) else {}
        name = clean_text(item.get("name"))
        role = normalize_role(item.get("approver_role"), default="")
        if not name:
            errors.append(f"steps[{index}].name")
        if not role:
            errors.append(f"steps[{index}].approver_role")
        budget_limit = None
        if item.get("budget_limit") not in (None, ""):
            budget_limit = parse_float(item.get("budget_limit"))
            if budget_limit is None or budget_limit < 0:
                errors.append(f"steps[{index}].budget_limit")
        steps.append(
            {
                "name": name,
                "description": clean_text(item.get("description")),
                "approver_role": role,
                "required": item.get("required") is not False,
                "auto_approve": bool(item.get("auto_approve")),
                "budget_limit": budget_limit,
            }
        )
    return steps, errors


class ApprovalService:
    def __init__(self, notifications: NotificationService | None = None) -> None:
        self.notifications = notifications or NotificationService()

    # workflows

    def list_workflows(self, db, *, tenant_id: str) -> ServiceOutput:
        repository = ApprovalRepository(tenant_id=tenant_id)
        items = [self._with_steps(db, repository, row) for row in repository.list_workflows(db)]
        return ServiceOutput(payload={"items": items, "total": len(items)})

    def get_workflow(self, db, *, tenant_id: str, workflow_id: int) -> ServiceOutput:
        repository = ApprovalRepository(tenant_id=tenant_id)
        return ServiceOutput(payload=self._with_steps(db, repository, self._load_workflow(db, repository, workflow_id)))

    def create_workflow(self, db, *, actor: Actor, payload: Dict[str, Any]) -> ServiceOutput:
        name = clean_text(payload.get("name"))
        display_name = clean_text(payload.get("display_name"))
        raw_entity_type = clean_text(payload.get("entity_type"))
        missing = [
            field
            for field, value in (("name", name), ("display_name", display_name), ("entity_type", raw_entity_type))
            if not value
        ]
        if missing:
            raise ValidationError(code="missing_fields", details=missing)
        entity_type = normalize_entity_type(raw_entity_type)
        steps: List[Dict[str, Any]] = []
        if payload.get("steps") is not None:
            steps, errors = steps_from_payload(payload.get("steps"))
            if errors:
                raise UserActionError(code="invalid_payload", details=errors)

        repository = ApprovalRepository(tenant_id=actor.tenant_id)
        if repository.find_by_name(db, name):
            raise ConflictError(code="duplicate", details={"field": "name"})
        workflow_id = repository.create_workflow(
            db,
            name=name,
            display_name=display_name,
            entity_type=entity_type,
            active=payload.get("active") is not False,
        )
        repository.replace_steps(db, workflow_id, steps)
        db.commit()

        workflow = self._with_steps(db, repository, repository.get_by_id(db, workflow_id))
        record_audit(
            db,
            tenant_id=actor.tenant_id,
            action="CREATE",
            entity_type="Workflow",
            entity_id=workflow_id,
            user_id=actor.user_id,
            new_data={"name": name, "entity_type": entity_type, "steps": len(steps)},
        )
        return ServiceOutput(payload=workflow, status_code=201)

    def update_workflow(self, db, *, actor: Actor, workflow_id: int, payload: Dict[str, Any]) -> ServiceOutput:
        repository = ApprovalRepository(tenant_id=actor.tenant_id)
        current = self._load_workflow(db, repository, workflow_id)
        fields: Dict[str, Any] = {}
        if "display_name" in payload:
            display_name = clean_text(payload.get("display_name"))
            if not display_name:
                raise UserActionError(code="invalid_payload", details=["display_name"])
            fields["display_name"] = display_name
        if "entity_type" in payload:
            fields["entity_type"] = normalize_entity_type(payload.get("entity_type"))
        if "active" in payload:
            fields["active"] = 1 if payload.get("active") not in (False, 0, "0", "false") else 0
        steps = None
        if "steps" in payload:
            steps, errors = steps_from_payload(payload.get("steps"))
            if errors:
                raise UserActionError(code="invalid_payload", details=errors)
        if not fields and steps is None:
            raise ValidationError(code="no_changes")

        repository.update_fields(db, workflow_id, fields or {"display_name": current["display_name"]})
        if steps is not None:
            repository.replace_steps(db, workflow_id, steps)
        db.commit()

        record_audit(
            db,
            tenant_id=actor.tenant_id,
            action="UPDATE",
            entity_type="Workflow",
            entity_id=workflow_id,
            user_id=actor.user_id,
            old_data={key: current.get(key) for key in fields},
            new_data={**fields, **({"steps": len(steps)} if steps is not None else {})},
        )
        return self.get_workflow(db, tenant_id=actor.tenant_id, workflow_id=workflow_id)

    def delete_workflow(self, db, *, actor: Actor, workflow_id: int) -> ServiceOutput:
        repository = ApprovalRepository(tenant_id=actor.tenant_id)
        current = self._load_workflow(db, repository, workflow_id)
        repository.delete_workflow(db, workflow_id)
        db.commit()
        record_audit(
            db,
            tenant_id=actor.tenant_id,
            action="DELETE",
            entity_type="Workflow",
            entity_id=workflow_id,
            user_id=actor.user_id,
            old_data={"name": current["name"], "entity_type": current["entity_type"]},
        )
        return ServiceOutput(payload={"ok": True, "id": workflow_id})

    def init_defaults(self, db, *, actor: Actor) -> ServiceOutput:
        repository = ApprovalRepository(tenant_id=actor.tenant_id)
        existing = repository.count_workflows(db)
        if existing:
            return ServiceOutput(
                payload={"ok": True, "message": success_message("workflows_already_initialized"), "count": existing}
            )
        for definition in DEFAULT_WORKFLOWS:
            workflow_id = repository.create_workflow(
                db,
                name=definition["name"],
                display_name=definition["display_name"],
                entity_type=definition["entity_type"],
            )
            repository.replace_steps(db, workflow_id, definition["steps"])
        db.commit()
        items = [self._with_steps(db, repository, row) for row in repository.list_workflows(db)]
        return ServiceOutput(
            payload={
                "ok": True,
                "message": success_message("workflows_initialized"),
                "count": len(items),
                "items": items,
            },
            status_code=201,
        )

    # approvals

    def status(self, db, *, actor: Actor, entity_type: str, entity_id: int) -> ServiceOutput:
        entity_type = normalize_entity_type(entity_type)
        repository = ApprovalRepository(tenant_id=actor.tenant_id)
        entity = self._load_entity(db, repository, entity_type, entity_id)
        workflow = repository.active_workflow(db, entity_type)
        if not workflow:
            return ServiceOutput(
                payload={"has_workflow": False, "entity_type": entity_type, "entity_id": entity_id}
            )

        statuses = self._statuses(db, repository, workflow, entity_type, entity)
        step = current_step(statuses)
        return ServiceOutput(
            payload={
                "has_workflow": True,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "workflow": {
                    "id": workflow["id"],
                    "name": workflow["name"],
                    "display_name": workflow["display_name"],
                },
                "steps": statuses,
                "current_step": step,
                "overall_status": overall_status(statuses),
                "can_approve": can_decide(actor.role, step),
            }
        )

    def decide(self, db, *, actor: Actor, entity_type: str, entity_id: int, payload: Dict[str, Any]) -> ServiceOutput:
        entity_type = normalize_entity_type(entity_type)
        action = str(payload.get("action") or "").strip().lower()
        decision = APPROVAL_ACTIONS.get(action)
        if decision is None:
            raise UserActionError(code="invalid_action", details=["action"])

        repository = ApprovalRepository(tenant_id=actor.tenant_id)
        entity = self._load_entity(db, repository, entity_type, entity_id)
        workflow = repository.active_workflow(db, entity_type)
        if not workflow:
            raise UserActionError(code="no_workflow", details={"entity_type": entity_type})

        statuses = self._advance_auto_steps(db, repository, workflow, entity_type, entity)
        if overall_status(statuses) != "pending":
            raise ConflictError(code="approval_closed", details={"overall_status": overall_status(statuses)})

        requested = parse_positive_int(payload.get("step_order"))
        if requested is None:
            target = current_step(statuses)
        else:
            target = next((status for status in statuses if status["step_order"] == requested), None)
        if target is None:
            raise UserActionError(code="invalid_step", details={"step_order": payload.get("step_order")})
        if not can_decide(actor.role, target):
            raise PermissionError(
                code="forbidden",
                critical=False,
                log_context=f"role={actor.role} approver_role={target['approver_role']}",
            )

        comment = clean_text(payload.get("comment"))
        record_id = repository.save_record(
            db,
            entity_type=entity_type,
            entity_id=entity_id,
            step_order=target["step_order"],
            step_name=target["name"],
            status=decision,
            approver_user_id=actor.user_id,
            comment=comment,
        )
        statuses = self._advance_auto_steps(db, repository, workflow, entity_type, entity)
        outcome = overall_status(statuses)
        if outcome != "pending":
            self._apply_outcome(db, actor, entity_type, entity, outcome)
        db.commit()

        self._notify_decision(db, actor, entity_type, entity, target, decision)
        record_audit(
            db,
            tenant_id=actor.tenant_id,
            action="APPROVE" if decision == "approved" else "REJECT",
            entity_type=_AUDIT_ENTITY[entity_type],
            entity_id=entity_id,
            user_id=actor.user_id,
            new_data={
                "step_order": target["step_order"],
                "step_name": target["name"],
                "status": decision,
                "comment": comment,
                "overall_status": outcome,
            },
        )
        logger.info(
            "approval_recorded",
            extra={"entity_type": entity_type, "entity_id": entity_id, "step_order": target["step_order"], "status": decision},
        )
        return ServiceOutput(
            payload={
                "ok": True,
                "record": {
                    "id": record_id,
                    "step_order": target["step_order"],
                    "step_name": target["name"],
                    "status": decision,
                    "comment": comment,
                },
                "overall_status": outcome,
                "current_step": current_step(statuses),
            }
        )

    def pending(self, db, *, actor: Actor, limit: int = 50) -> ServiceOutput:
        repository = ApprovalRepository(tenant_id=actor.tenant_id)
        items: List[Dict[str, Any]] = []
        for entity_type in ENTITY_TYPES:
            workflow = repository.active_workflow(db, entity_type)
            if not workflow:
                continue
            for entity in repository.pending_entities(db, entity_type, limit=limit):
                statuses = self._statuses(db, repository, workflow, entity_type, entity)
                step = current_step(statuses)
                if overall_status(statuses) != "pending" or not can_decide(actor.role, step):
                    continue
                items.append(
                    {
                        "entity_type": entity_type,
                        "entity_id": entity["id"],
                        "barcode": entity["barcode"],
                        "title": entity.get("title"),
                        "amount": entity.get("amount"),
                        "unit_name": entity.get("unit_name"),
                        "created_at": entity["created_at"],
                        "current_step": {
                            "step_order": step["step_order"],
                            "name": step["name"],
                            "approver_role": step["approver_role"],
                        },
                    }
                )
        return ServiceOutput(payload={"items": items, "count": len(items), "role": actor.role})

    # helpers

    def _statuses(self, db, repository: ApprovalRepository, workflow: dict, entity_type: str, entity: dict) -> List[dict]:
        steps = applicable_steps(repository.list_steps(db, int(workflow["id"])), entity.get("amount"))
        records = repository.list_records(db, entity_type=entity_type, entity_id=int(entity["id"]))
        return step_statuses(steps, records)

    def _advance_auto_steps(
        self,
        db,
        repository: ApprovalRepository,
        workflow: dict,
        entity_type: str,
        entity: dict,
    ) -> List[dict]:
        statuses = self._statuses(db, repository, workflow, entity_type, entity)
        step = current_step(statuses)
        while step is not None and step["auto_approve"] and overall_status(statuses) == "pending":
            repository.save_record(
                db,
                entity_type=entity_type,
                entity_id=int(entity["id"]),
                step_order=step["step_order"],
                step_name=step["name"],
                status="approved",
                approver_user_id=None,
                comment=AUTO_APPROVE_COMMENT,
            )
            statuses = self._statuses(db, repository, workflow, entity_type, entity)
            step = current_step(statuses)
        return statuses

    def _apply_outcome(self, db, actor: Actor, entity_type: str, entity: dict, outcome: str) -> None:
        if entity.get("status") != "pending":
            return
        entity_id = int(entity["id"])
        if entity_type == "request":
            RequestRepository(tenant_id=actor.tenant_id).mark_status(db, [entity_id], outcome, only_from=("pending",))
        elif outcome == "approved":
            OrderRepository(tenant_id=actor.tenant_id).update_fields(db, entity_id, {"status": "approved"})
        else:
            return
        StatusEventRepository(tenant_id=actor.tenant_id).add_event(
            db,
            entity=entity_type,
            entity_id=entity_id,
            from_status="pending",
            to_status=outcome,
            reason="approval_workflow",
            actor_user_id=actor.user_id,
        )

    def _notify_decision(self, db, actor: Actor, entity_type: str, entity: dict, step: dict, decision: str) -> None:
        target_user_id = entity.get("target_user_id")
        if not target_user_id:
            return
        status_text = "onaylandı" if decision == "approved" else "reddedildi"
        label = FRIENDLY_TERMS.get(entity_type, entity_type)
        link = f"/talepler/{entity['id']}" if entity_type == "request" else f"/siparisler/{entity['id']}"
        try:
            self.notifications.notify_many(
                db,
                tenant_id=actor.tenant_id,
                user_ids=[target_user_id],
                title=f"{step['name']} {status_text}",
                body=f"{label} {entity.get('barcode') or entity['id']} adım {step['step_order']} {status_text}.",
                type="approval",
                meta={"entity_type": entity_type, "entity_id": entity["id"], "step_order": step["step_order"]},
                link=link,
            )
        except Exception:  # noqa: BLE001
            logger.exception("approval_notification_failed", extra={"entity_type": entity_type, "entity_id": entity["id"]})

    @staticmethod
    def _with_steps(db, repository: ApprovalRepository, workflow: dict) -> dict:
        result = dict(workflow)
        result["active"] = bool(result.get("active"))
        result["steps"] = [
            {**step, "required": bool(step["required"]), "auto_approve": bool(step["auto_approve"])}
            for step in repository.list_steps(db, int(workflow["id"]))
        ]
        return result

    @staticmethod
    def _load_workflow(db, repository: ApprovalRepository, workflow_id: int) -> dict:
        workflow = repository.get_by_id(db, workflow_id)
        if not workflow:
            raise NotFoundError(code="workflow_not_found")
        return workflow

    @staticmethod
    def _load_entity(db, repository: ApprovalRepository, entity_type: str, entity_id: int) -> dict:
        entity = repository.load_entity(db, entity_type, entity_id)
        if not entity:
            raise NotFoundError(code="entity_not_found", details={"entity_type": entity_type, "entity_id": entity_id})
        return entity
