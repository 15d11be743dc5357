from __future__ import annotations

from typing import Any, Dict, List, Sequence

from satinalma.domain.contracts import ListQuery
from satinalma.infrastructure.repositories.base import BaseRepository, Page


class RequestRepository(BaseRepository):
    table_name = "requests"

    def create(
        self,
        db,
        *,
        barcode: str,
        subject: str,
        budget: float,
        owner_user_id: int | None,
        responsible_user_id: int | None,
        unit_name: str | None,
        unit_email: str | None,
        status: str = "pending",
    ) -> int:
        return db.insert(
            """
            INSERT INTO requests (
                barcode, subject, budget, status, owner_user_id, responsible_user_id, unit_name, unit_email, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                barcode,
                subject,
                budget,
                status,
                owner_user_id,
                responsible_user_id,
                unit_name,
                unit_email,
                self.tenant_id,
            ),
        )

    def find_by_barcode(self, db, barcode: str) -> dict | None:
        row = db.execute(
            "SELECT id, barcode FROM requests WHERE barcode = ? AND tenant_id = ? LIMIT 1",
            (barcode, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def add_item(self, db, request_id: int, item: Dict[str, Any]) -> int:
        return db.insert(
            """
            INSERT INTO request_items (request_id, name, quantity, unit, unit_price, category_id, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                request_id,
                item["name"],
                item["quantity"],
                item.get("unit") or "adet",
                item.get("unit_price"),
                item.get("category_id"),
                self.tenant_id,
            ),
        )

    def list_items(self, db, request_ids: Sequence[int]) -> List[dict]:
        ids = [int(request_id) for request_id in request_ids]
        if not ids:
            return []
        rows = db.execute(
            f"""
            SELECT ri.*, r.barcode AS request_barcode
            FROM request_items ri
            JOIN requests r ON r.id = ri.request_id AND r.tenant_id = ri.tenant_id
            WHERE ri.request_id IN ({self.placeholders(ids)}) AND ri.tenant_id = ?
            ORDER BY ri.request_id ASC, ri.id ASC
            """,
            self.scoped_params(ids),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_ids(self, db, request_ids: Sequence[int]) -> List[dict]:
        ids = [int(request_id) for request_id in request_ids]
        if not ids:
            return []
        rows = db.execute(
            f"""
            SELECT *
            FROM requests
            WHERE id IN ({self.placeholders(ids)}) AND tenant_id = ?
            ORDER BY id ASC
            """,
            self.scoped_params(ids),
        ).fetchall()
        by_id = {int(row["id"]): dict(row) for row in rows}
        return [by_id[request_id] for request_id in ids if request_id in by_id]

    def list_page(self, db, query: ListQuery) -> Page:
        where = ["tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        self.apply_list_filters(
            query,
            where=where,
            params=params,
            search_columns=("barcode", "subject"),
            status_column="status",
            date_column="created_at",
        )
        return self.fetch_page(
            db,
            select_sql="SELECT *",
            from_sql="FROM requests",
            where=where,
            params=params,
            order_by=query.order_by({"date": "created_at", "budget": "budget"}),
            page=query.page,
            page_size=query.page_size,
        )

    def mark_status(self, db, request_ids: Sequence[int], status: str, *, only_from: Sequence[str] = ()) -> None:
        ids = [int(request_id) for request_id in request_ids]
        if not ids:
            return
        sql = f"UPDATE requests SET status = ? WHERE id IN ({self.placeholders(ids)}) AND tenant_id = ?"
        params: List[Any] = [status, *ids, self.tenant_id]
        if only_from:
            sql += f" AND status IN ({self.placeholders(only_from)})"
            params.extend(only_from)
        db.execute(sql, tuple(params))

    def recent(self, db, *, limit: int = 5) -> List[dict]:
        rows = db.execute(
            """
            SELECT id, barcode, subject, budget, status, created_at
            FROM requests
            WHERE tenant_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (self.tenant_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
