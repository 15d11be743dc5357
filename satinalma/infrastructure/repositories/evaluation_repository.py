from __future__ import annotations

from typing import Any, Dict, Iterable, List

from satinalma.db import utc_now_text
from satinalma.infrastructure.repositories.base import BaseRepository


class EvaluationRepository(BaseRepository):
    table_name = "evaluations"

    def list_questions(self, db, *, scoring_type: str | None = None, active_only: bool = True) -> List[dict]:
        where = ["tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        if active_only:
            where.append("active = 1")
        if scoring_type:
            where.append("(scoring_type IS NULL OR scoring_type = ?)")
            params.append(scoring_type)
        rows = db.execute(
            f"""
            SELECT id, section, text, scoring_type, sort_order, active
            FROM evaluation_questions
            WHERE {" AND ".join(where)}
            ORDER BY section ASC, sort_order ASC, id ASC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def questions_by_ids(self, db, question_ids: Iterable[int]) -> Dict[int, dict]:
        ids = sorted({int(question_id) for question_id in question_ids})
        if not ids:
            return {}
        rows = db.execute(
            f"""
            SELECT id, section, text, scoring_type
            FROM evaluation_questions
            WHERE id IN ({self.placeholders(ids)}) AND tenant_id = ?
            """,
            self.scoped_params(ids),
        ).fetchall()
        return {int(row["id"]): dict(row) for row in rows}

    def add_question(
        self,
        db,
        *,
        section: str,
        text: str,
        scoring_type: str | None = None,
        sort_order: int = 0,
    ) -> int:
        return db.insert(
            """
            INSERT INTO evaluation_questions (section, text, scoring_type, sort_order, tenant_id)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (section, text, scoring_type, sort_order, self.tenant_id),
        )

    def active_scoring_type(self, db, code: str) -> dict | None:
        normalized = str(code or "").strip()
        if not normalized:
            return None
        row = db.execute(
            """
            SELECT code, name, weight_a, weight_b, weight_c
            FROM scoring_types
            WHERE tenant_id = ? AND active = 1 AND LOWER(code) = ?
            ORDER BY id
            LIMIT 1
            """,
            (self.tenant_id, normalized.lower()),
        ).fetchone()
        return dict(row) if row else None

    def create(
        self,
        db,
        *,
        order_id: int,
        supplier_id: int,
        scoring_type: str,
        result: Dict[str, Any],
        evaluator_user_id: int | None,
        comment: str | None,
    ) -> int:
        return db.insert(
            """
            INSERT INTO evaluations (
                order_id, supplier_id, scoring_type, avg_a, avg_b, avg_c, overall_rating, score, decision,
                weights_source, evaluator_user_id, comment, created_at, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                order_id,
                supplier_id,
                scoring_type,
                result["avg_a"],
                result["avg_b"],
                result["avg_c"],
                result["overall_rating"],
                result["score"],
                result["decision"],
                result["weights_source"],
                evaluator_user_id,
                comment,
                utc_now_text(),
                self.tenant_id,
            ),
        )

    def add_answer(self, db, evaluation_id: int, *, question_id: int, value: str, numeric_value: float) -> None:
        db.execute(
            """
            INSERT INTO evaluation_answers (evaluation_id, question_id, value, numeric_value, tenant_id)
            VALUES (?, ?, ?, ?, ?)
            """,
            (evaluation_id, question_id, value, numeric_value, self.tenant_id),
        )

    def list_filtered(self, db, *, supplier_id: int | None = None, order_id: int | None = None, limit: int = 200) -> List[dict]:
        where = ["e.tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        if supplier_id:
            where.append("e.supplier_id = ?")
            params.append(supplier_id)
        if order_id:
            where.append("e.order_id = ?")
            params.append(order_id)
        rows = db.execute(
            f"""
            SELECT e.*, o.barcode AS order_barcode, s.name AS supplier_name
            FROM evaluations e
            LEFT JOIN orders o ON o.id = e.order_id AND o.tenant_id = e.tenant_id
            LEFT JOIN suppliers s ON s.id = e.supplier_id AND s.tenant_id = e.tenant_id
            WHERE {" AND ".join(where)}
            ORDER BY e.created_at DESC, e.id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def supplier_score(self, db, supplier_id: int) -> dict:
        row = db.execute(
            """
            SELECT COUNT(*) AS evaluation_count, AVG(score) AS average_score, AVG(overall_rating) AS average_rating
            FROM evaluations
            WHERE supplier_id = ? AND tenant_id = ?
            """,
            (supplier_id, self.tenant_id),
        ).fetchone()
        data = dict(row) if row else {}
        count = int(data.get("evaluation_count") or 0)
        return {
            "supplier_id": supplier_id,
            "evaluation_count": count,
            "average_score": round(float(data["average_score"]), 2) if count else None,
            "average_rating": round(float(data["average_rating"]), 2) if count else None,
        }
