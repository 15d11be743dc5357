from __future__ import annotations

from typing import Any, List

from flask import Blueprint, jsonify, request

from satinalma.application.evaluation_service import EvaluationService
from satinalma.db import get_db
from satinalma.domain.contracts import EvaluationAnswerInput, EvaluationSubmitInput
from satinalma.policies import require_permission
from satinalma.procurement.validators import clean_text
from satinalma.routes.common import current_actor, json_payload, parse_optional_int, tenant_id


evaluations_bp = Blueprint("evaluations", __name__, url_prefix="/api/evaluations")

_EVALUATION_SERVICE = EvaluationService()


def _parse_answers(raw_answers: Any) -> List[EvaluationAnswerInput]:
    # accepts [{question_id, value, section?}] or {question_id: value}
    if isinstance(raw_answers, dict):
        raw_answers = [{"question_id": key, "value": value} for key, value in raw_answers.items()]
    answers: List[EvaluationAnswerInput] = []
    for raw in raw_answers if isinstance(raw_answers, list) else []:
        if not isinstance(raw, dict):
            continue
        question_id = parse_optional_int(raw.get("question_id"))
        value = raw.get("value")
        if not question_id or question_id <= 0 or value is None:
            continue
        answers.append(
            EvaluationAnswerInput(
                question_id=question_id,
                section=clean_text(raw.get("section")),
                value=str(value),
            )
        )
    return answers


@evaluations_bp.route("", methods=["GET", "POST"])
def evaluations_api():
    db = get_db()
    if request.method == "POST":
        require_permission("evaluation:submit")
        payload = json_payload()
        result = _EVALUATION_SERVICE.submit(
            db,
            actor=current_actor(),
            submit_input=EvaluationSubmitInput(
                order_id=parse_optional_int(payload.get("order_id")) or 0,
                supplier_id=parse_optional_int(payload.get("supplier_id")) or 0,
                scoring_type=clean_text(payload.get("scoring_type")) or "",
                answers=_parse_answers(payload.get("answers")),
                comment=clean_text(payload.get("comment")),
            ),
        )
        return jsonify(result.payload), result.status_code

    require_permission("evaluation:read")
    result = _EVALUATION_SERVICE.list(
        db,
        tenant_id=tenant_id(),
        supplier_id=parse_optional_int(request.args.get("supplier_id")),
        order_id=parse_optional_int(request.args.get("order_id")),
    )
    return jsonify(result.payload), result.status_code


@evaluations_bp.route("/questions", methods=["GET"])
def evaluation_questions():
    require_permission("evaluation:read")
    result = _EVALUATION_SERVICE.questions(
        get_db(),
        tenant_id=tenant_id(),
        scoring_type=clean_text(request.args.get("scoring_type")),
    )
    return jsonify(result.payload), result.status_code
