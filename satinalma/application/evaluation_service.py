from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app

from satinalma.application.order_service import OrderService
from satinalma.db import to_db_timestamp, utc_now
from satinalma.domain.contracts import Actor, EvaluationSubmitInput, ServiceOutput
from satinalma.errors import NotFoundError, UserActionError, ValidationError
from satinalma.infrastructure.repositories.evaluation_repository import EvaluationRepository
from satinalma.infrastructure.repositories.order_repository import OrderRepository
from satinalma.infrastructure.repositories.supplier_repository import SupplierRepository
from satinalma.procurement.evaluation_scoring import answer_value, evaluate


logger = logging.getLogger("satinalma.evaluations")

DEFAULT_SCORING_TYPE = "genel"


class EvaluationService:
    def __init__(self, orders: OrderService | None = None) -> None:
        self.orders = orders or OrderService()

    def submit(self, db, *, actor: Actor, submit_input: EvaluationSubmitInput) -> ServiceOutput:
        if not submit_input.order_id or not submit_input.supplier_id:
            raise UserActionError(code="invalid_payload", message_key="missing_order_or_supplier")

        answers = [
            answer
            for answer in submit_input.answers
            if answer.question_id and str(answer.value if answer.value is not None else "").strip()
        ]
        if not answers:
            raise UserActionError(code="invalid_payload", message_key="answers_missing_or_invalid")

        repository = EvaluationRepository(tenant_id=actor.tenant_id)
        questions = repository.questions_by_ids(db, [answer.question_id for answer in answers])
        unknown_ids = sorted({answer.question_id for answer in answers if answer.question_id not in questions})
        if unknown_ids:
            raise ValidationError(
                code="invalid_question_ids",
                details={"unknown_ids": unknown_ids, "count": len(unknown_ids)},
            )

        if not OrderRepository(tenant_id=actor.tenant_id).get_by_id(db, submit_input.order_id):
            raise NotFoundError(code="not_found", details={"order_id": submit_input.order_id})
        if not SupplierRepository(tenant_id=actor.tenant_id).get_by_id(db, submit_input.supplier_id):
            raise NotFoundError(code="not_found", details={"supplier_id": submit_input.supplier_id})

        scoring_type = (submit_input.scoring_type or "").strip().lower() or DEFAULT_SCORING_TYPE
        scored_answers = [
            (questions[answer.question_id].get("section") or answer.section, answer.value) for answer in answers
        ]
        result = evaluate(scored_answers, scoring_type, repository.active_scoring_type(db, scoring_type))

        evaluation_id = repository.create(
            db,
            order_id=submit_input.order_id,
            supplier_id=submit_input.supplier_id,
            scoring_type=scoring_type,
            result=result,
            evaluator_user_id=actor.user_id,
            comment=submit_input.comment,
        )
        for answer in answers:
            repository.add_answer(
                db,
                evaluation_id,
                question_id=answer.question_id,
                value=str(answer.value).strip(),
                numeric_value=answer_value(answer.value),
            )
        db.commit()
        return ServiceOutput(
            payload={
                "id": evaluation_id,
                "order_id": submit_input.order_id,
                "supplier_id": submit_input.supplier_id,
                "scoring_type": scoring_type,
                **result,
            },
            status_code=201,
        )

    def list(self, db, *, tenant_id: str, supplier_id: int | None = None, order_id: int | None = None) -> ServiceOutput:
        items = EvaluationRepository(tenant_id=tenant_id).list_filtered(db, supplier_id=supplier_id, order_id=order_id)
        return ServiceOutput(payload={"items": items, "total": len(items)})

    def questions(self, db, *, tenant_id: str, scoring_type: str | None = None) -> ServiceOutput:
        items = EvaluationRepository(tenant_id=tenant_id).list_questions(db, scoring_type=scoring_type)
        return ServiceOutput(payload={"items": items})

    def remind_pending(self, db, *, tenant_id: str) -> dict:
        after_days = int(current_app.config.get("EVALUATION_REMINDER_AFTER_DAYS", 3) or 0)
        batch = int(current_app.config.get("EVALUATION_REMINDER_BATCH", 50) or 50)
        cutoff = to_db_timestamp(utc_now() - timedelta(days=after_days))
        repository = OrderRepository(tenant_id=tenant_id)
        orders = repository.completed_without_evaluation(
            db,
            updated_before=cutoff,
            reminded_before=cutoff,
            limit=batch,
        )
        sent = 0
        errors = 0
        for order in orders:
            try:
                if self.orders.send_evaluation_request(db, tenant_id=tenant_id, order=order):
                    sent += 1
            except Exception:  # noqa: BLE001
                errors += 1
                logger.exception("evaluation_reminder_failed", extra={"order_id": order["id"], "tenant_id": tenant_id})
                continue
            repository.update_fields(
                db,
                order["id"],
                {"evaluation_reminder_sent_at": to_db_timestamp(utc_now())},
                touch=False,
            )
            db.commit()
        return {"ok": True, "sent": sent, "errors": errors}
