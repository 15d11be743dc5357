from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List

from satinalma.db import utc_now_text
from satinalma.domain.contracts import ContractInput, ListQuery
from satinalma.infrastructure.repositories.base import BaseRepository, Page


EXPIRING_WINDOW_DAYS = 30
REMINDER_EXCLUDED_STATUSES = ("terminated", "expired")


class ContractRepository(BaseRepository):
    table_name = "contracts"

    def get_by_id(self, db, row_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT *
            FROM contracts
            WHERE id = ? AND tenant_id = ? AND deleted_at IS NULL
            LIMIT 1
            """,
            (row_id, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def find_by_number(self, db, number: str, *, exclude_id: int | None = None) -> dict | None:
        sql = "SELECT id, number FROM contracts WHERE number = ? AND tenant_id = ?"
        params: List[Any] = [number, self.tenant_id]
        if exclude_id:
            sql += " AND id <> ?"
            params.append(exclude_id)
        row = db.execute(sql + " LIMIT 1", tuple(params)).fetchone()
        return dict(row) if row else None

    def find_overlapping(
        self,
        db,
        *,
        order_id: int,
        title: str,
        start_date: str,
        end_date: str | None,
    ) -> dict | None:
        if end_date:
            row = db.execute(
                """
                SELECT id, number
                FROM contracts
                WHERE tenant_id = ? AND order_id = ? AND title = ? AND deleted_at IS NULL
                  AND start_date <= ? AND end_date IS NOT NULL AND end_date >= ?
                ORDER BY id
                LIMIT 1
                """,
                (self.tenant_id, order_id, title, end_date, start_date),
            ).fetchone()
        else:
            row = db.execute(
                """
                SELECT id, number
                FROM contracts
                WHERE tenant_id = ? AND order_id = ? AND title = ? AND start_date = ? AND deleted_at IS NULL
                ORDER BY id
                LIMIT 1
                """,
                (self.tenant_id, order_id, title, start_date),
            ).fetchone()
        return dict(row) if row else None

    def create(self, db, *, data: ContractInput, number: str) -> int:
        return db.insert(
            """
            INSERT INTO contracts (
                number, title, type, parties, status, start_date, end_date, value, currency,
                order_id, responsible_user_id, notes, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                number,
                data.title,
                data.type,
                data.parties,
                data.status,
                data.start_date,
                data.end_date,
                data.value,
                data.currency,
                data.order_id,
                data.responsible_user_id,
                data.notes,
                self.tenant_id,
            ),
        )

    def soft_delete(self, db, contract_id: int) -> None:
        self.update_fields(db, contract_id, {"deleted_at": utc_now_text()})

    def list_page(self, db, query: ListQuery, *, today: date) -> Page:
        where = ["tenant_id = ?", "deleted_at IS NULL"]
        params: List[Any] = [self.tenant_id]
        self.apply_list_filters(
            query,
            where=where,
            params=params,
            search_columns=("title", "number"),
            status_column="status",
            date_column="created_at",
        )
        expiry = query.filter("expiry")
        today_text = today.isoformat()
        if expiry == "expired":
            where.append("end_date IS NOT NULL AND end_date < ?")
            params.append(today_text)
        elif expiry == "expiring":
            where.append("end_date IS NOT NULL AND end_date >= ? AND end_date <= ?")
            params.extend([today_text, (today + timedelta(days=EXPIRING_WINDOW_DAYS)).isoformat()])
        elif expiry == "active":
            where.append("start_date <= ? AND (end_date IS NULL OR end_date > ?)")
            params.extend([today_text, today_text])
        elif expiry == "perpetual":
            where.append("end_date IS NULL")

        return self.fetch_page(
            db,
            select_sql="SELECT *",
            from_sql="FROM contracts",
            where=where,
            params=params,
            order_by=query.order_by({"date": "created_at", "number": "number"}),
            page=query.page,
            page_size=query.page_size,
        )

    def expiring_between(self, db, *, start: str, end: str) -> List[Dict[str, Any]]:
        rows = db.execute(
            f"""
            SELECT c.*,
                   r.owner_user_id AS request_owner_user_id,
                   r.responsible_user_id AS request_responsible_user_id
            FROM contracts c
            LEFT JOIN orders o ON o.id = c.order_id AND o.tenant_id = c.tenant_id
            LEFT JOIN requests r ON r.id = o.request_id AND r.tenant_id = c.tenant_id
            WHERE c.tenant_id = ?
              AND c.deleted_at IS NULL
              AND c.end_date IS NOT NULL
              AND c.end_date >= ? AND c.end_date <= ?
              AND c.status NOT IN ({self.placeholders(REMINDER_EXCLUDED_STATUSES)})
            ORDER BY c.end_date ASC, c.id ASC
            """,
            (self.tenant_id, start, end, *REMINDER_EXCLUDED_STATUSES),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count_all(self, db, *, status: str | None = None) -> int:
        sql = "SELECT COUNT(*) AS total FROM contracts WHERE tenant_id = ? AND deleted_at IS NULL"
        params: List[Any] = [self.tenant_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        row = db.execute(sql, tuple(params)).fetchone()
        return int(row["total"] or 0) if row else 0
