from __future__ import annotations

from typing import Any, Dict, List

from satinalma.db import utc_now_text
from satinalma.infrastructure.repositories.base import BaseRepository


_ENTITY_SELECT = {
    "request": """
        SELECT r.id, r.barcode, r.subject AS title, r.budget AS amount, r.unit_name,
               r.owner_user_id AS target_user_id, r.status, r.created_at
        FROM requests r
        WHERE r.tenant_id = ? AND {condition}
        ORDER BY r.created_at DESC, r.id DESC
        LIMIT ?
    """,
    "order": """
        SELECT r.id, r.barcode, NULL AS title,
               COALESCE((
                   SELECT SUM(oi.quantity * oi.unit_price + oi.extra_costs)
                   FROM order_items oi
                   WHERE oi.order_id = r.id AND oi.tenant_id = r.tenant_id
               ), 0) AS amount,
               NULL AS unit_name, r.responsible_user_id AS target_user_id, r.status, r.created_at
        FROM orders r
        WHERE r.tenant_id = ? AND {condition}
        ORDER BY r.created_at DESC, r.id DESC
        LIMIT ?
    """,
}


class ApprovalRepository(BaseRepository):
    table_name = "approval_workflows"

    def list_workflows(self, db) -> List[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM approval_workflows
            WHERE tenant_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (self.tenant_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count_workflows(self, db) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM approval_workflows WHERE tenant_id = ?",
            (self.tenant_id,),
        ).fetchone()
        return int((dict(row) if row else {}).get("total") or 0)

    def find_by_name(self, db, name: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM approval_workflows WHERE name = ? AND tenant_id = ? LIMIT 1",
            (name, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def active_workflow(self, db, entity_type: str) -> dict | None:
        row = db.execute(
            """
            SELECT *
            FROM approval_workflows
            WHERE entity_type = ? AND active = 1 AND tenant_id = ?
            ORDER BY id ASC
            LIMIT 1
            """,
            (entity_type, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def create_workflow(self, db, *, name: str, display_name: str, entity_type: str, active: bool = True) -> int:
        return db.insert(
            """
            INSERT INTO approval_workflows (name, display_name, entity_type, active, tenant_id)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (name, display_name, entity_type, 1 if active else 0, self.tenant_id),
        )

    def list_steps(self, db, workflow_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT id, workflow_id, step_order, name, description, approver_role, required, auto_approve, budget_limit
            FROM approval_steps
            WHERE workflow_id = ? AND tenant_id = ?
            ORDER BY step_order ASC
            """,
            (workflow_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def replace_steps(self, db, workflow_id: int, steps: List[Dict[str, Any]]) -> None:
        db.execute(
            "DELETE FROM approval_steps WHERE workflow_id = ? AND tenant_id = ?",
            (workflow_id, self.tenant_id),
        )
        for index, step in enumerate(steps, start=1):
            db.execute(
                """
                INSERT INTO approval_steps (
                    workflow_id, step_order, name, description, approver_role, required, auto_approve, budget_limit, tenant_id
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    workflow_id,
                    index,
                    step["name"],
                    step.get("description"),
                    step["approver_role"],
                    1 if step.get("required", True) else 0,
                    1 if step.get("auto_approve") else 0,
                    step.get("budget_limit"),
                    self.tenant_id,
                ),
            )

    def delete_workflow(self, db, workflow_id: int) -> None:
        db.execute(
            "DELETE FROM approval_steps WHERE workflow_id = ? AND tenant_id = ?",
            (workflow_id, self.tenant_id),
        )
        self.delete_by_id(db, workflow_id)

    def list_records(self, db, *, entity_type: str, entity_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT ar.id, ar.step_order, ar.step_name, ar.status, ar.approver_user_id, ar.comment, ar.processed_at,
                   u.display_name AS approver_name, u.email AS approver_email
            FROM approval_records ar
            LEFT JOIN users u ON u.id = ar.approver_user_id AND u.tenant_id = ar.tenant_id
            WHERE ar.entity_type = ? AND ar.entity_id = ? AND ar.tenant_id = ?
            ORDER BY ar.step_order ASC
            """,
            (entity_type, entity_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def save_record(
        self,
        db,
        *,
        entity_type: str,
        entity_id: int,
        step_order: int,
        step_name: str,
        status: str,
        approver_user_id: int | None,
        comment: str | None,
    ) -> int:
        existing = db.execute(
            """
            SELECT id FROM approval_records
            WHERE entity_type = ? AND entity_id = ? AND step_order = ? AND tenant_id = ?
            """,
            (entity_type, entity_id, step_order, self.tenant_id),
        ).fetchone()
        processed_at = utc_now_text()
        if existing:
            record_id = int(dict(existing)["id"])
            db.execute(
                """
                UPDATE approval_records
                SET status = ?, approver_user_id = ?, comment = ?, processed_at = ?
                WHERE id = ? AND tenant_id = ?
                """,
                (status, approver_user_id, comment, processed_at, record_id, self.tenant_id),
            )
            return record_id
        return db.insert(
            """
            INSERT INTO approval_records (
                entity_type, entity_id, step_order, step_name, status, approver_user_id, comment, processed_at, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (entity_type, entity_id, step_order, step_name, status, approver_user_id, comment, processed_at, self.tenant_id),
        )

    def load_entity(self, db, entity_type: str, entity_id: int) -> dict | None:
        row = db.execute(
            _ENTITY_SELECT[entity_type].format(condition="r.id = ?"),
            (self.tenant_id, entity_id, 1),
        ).fetchone()
        return dict(row) if row else None

    def pending_entities(self, db, entity_type: str, *, limit: int = 50) -> List[dict]:
        rows = db.execute(
            _ENTITY_SELECT[entity_type].format(condition="r.status = 'pending'"),
            (self.tenant_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
