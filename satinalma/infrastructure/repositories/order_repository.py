from __future__ import annotations

from typing import Any, Dict, List

from satinalma.domain.contracts import ListQuery
from satinalma.infrastructure.repositories.base import BaseRepository, Page


PENDING_DELIVERY_STATUSES = ("pending", "approved", "partially_delivered")


def find_order_by_delivery_token(db, token: str) -> dict | None:
    normalized = str(token or "").strip()
    if not normalized:
        return None
    row = db.execute(
        "SELECT * FROM orders WHERE delivery_token = ? LIMIT 1",
        (normalized,),
    ).fetchone()
    return dict(row) if row else None


class OrderRepository(BaseRepository):
    table_name = "orders"

    def create(
        self,
        db,
        *,
        barcode: str,
        status: str = "pending",
        supplier_id: int | None = None,
        request_id: int | None = None,
        rfq_id: int | None = None,
        responsible_user_id: int | None = None,
        realized_total: float = 0.0,
        currency: str = "TRY",
    ) -> int:
        return db.insert(
            """
            INSERT INTO orders (
                barcode, status, supplier_id, request_id, rfq_id, responsible_user_id, realized_total, currency, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                barcode,
                status,
                supplier_id,
                request_id,
                rfq_id,
                responsible_user_id,
                realized_total,
                currency,
                self.tenant_id,
            ),
        )

    def find_by_barcode(self, db, barcode: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM orders WHERE barcode = ? AND tenant_id = ? LIMIT 1",
            (barcode, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def get_with_supplier(self, db, order_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT o.*, s.name AS supplier_name, s.email AS supplier_email,
                   r.barcode AS request_barcode, r.subject AS request_subject,
                   r.owner_user_id AS request_owner_user_id, r.responsible_user_id AS request_responsible_user_id,
                   r.unit_email AS request_unit_email
            FROM orders o
            LEFT JOIN suppliers s ON s.id = o.supplier_id AND s.tenant_id = o.tenant_id
            LEFT JOIN requests r ON r.id = o.request_id AND r.tenant_id = o.tenant_id
            WHERE o.id = ? AND o.tenant_id = ?
            LIMIT 1
            """,
            (order_id, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def add_item(self, db, order_id: int, item: Dict[str, Any]) -> int:
        return db.insert(
            """
            INSERT INTO order_items (order_id, name, sku, quantity, unit, unit_price, extra_costs, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                order_id,
                item["name"],
                item.get("sku"),
                item["quantity"],
                item.get("unit") or "adet",
                item.get("unit_price") or 0,
                item.get("extra_costs") or 0,
                self.tenant_id,
            ),
        )

    def replace_items(self, db, order_id: int, items: List[Dict[str, Any]]) -> None:
        db.execute("DELETE FROM order_items WHERE order_id = ? AND tenant_id = ?", (order_id, self.tenant_id))
        for item in items:
            self.add_item(db, order_id, item)

    def list_items(self, db, order_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT id, order_id, name, sku, quantity, unit, unit_price, extra_costs
            FROM order_items
            WHERE order_id = ? AND tenant_id = ?
            ORDER BY id ASC
            """,
            (order_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_page(self, db, query: ListQuery) -> Page:
        where = ["o.tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        self.apply_list_filters(
            query,
            where=where,
            params=params,
            search_columns=("o.barcode", "s.name"),
            status_column="o.status",
            date_column="o.created_at",
        )
        if query.filter("mode") == "pending-delivery":
            where.append(f"o.status IN ({self.placeholders(PENDING_DELIVERY_STATUSES)})")
            params.extend(PENDING_DELIVERY_STATUSES)
        supplier_id = query.filter("supplier_id")
        if supplier_id and supplier_id.isdigit():
            where.append("o.supplier_id = ?")
            params.append(int(supplier_id))

        return self.fetch_page(
            db,
            select_sql="SELECT o.*, s.name AS supplier_name",
            from_sql="FROM orders o LEFT JOIN suppliers s ON s.id = o.supplier_id AND s.tenant_id = o.tenant_id",
            where=where,
            params=params,
            order_by=query.order_by({"date": "o.created_at", "total": "o.realized_total"}, tiebreaker="o.id"),
            page=query.page,
            page_size=query.page_size,
        )

    def delete_cascade(self, db, order_id: int) -> None:
        scope = (order_id, self.tenant_id)
        db.execute("UPDATE contracts SET order_id = NULL WHERE order_id = ? AND tenant_id = ?", scope)
        db.execute("UPDATE invoices SET order_id = NULL WHERE order_id = ? AND tenant_id = ?", scope)
        db.execute(
            """
            DELETE FROM evaluation_answers
            WHERE tenant_id = ? AND evaluation_id IN (
                SELECT id FROM evaluations WHERE order_id = ? AND tenant_id = ?
            )
            """,
            (self.tenant_id, order_id, self.tenant_id),
        )
        db.execute("DELETE FROM evaluations WHERE order_id = ? AND tenant_id = ?", scope)
        db.execute(
            """
            DELETE FROM delivery_items
            WHERE tenant_id = ? AND delivery_id IN (
                SELECT id FROM deliveries WHERE order_id = ? AND tenant_id = ?
            )
            """,
            (self.tenant_id, order_id, self.tenant_id),
        )
        db.execute("DELETE FROM deliveries WHERE order_id = ? AND tenant_id = ?", scope)
        db.execute("DELETE FROM order_items WHERE order_id = ? AND tenant_id = ?", scope)
        db.execute("DELETE FROM orders WHERE id = ? AND tenant_id = ?", scope)

    def recent(self, db, *, limit: int = 5) -> List[dict]:
        rows = db.execute(
            """
            SELECT o.id, o.barcode, o.status, o.realized_total, o.created_at, s.name AS supplier_name
            FROM orders o
            LEFT JOIN suppliers s ON s.id = o.supplier_id AND s.tenant_id = o.tenant_id
            WHERE o.tenant_id = ?
            ORDER BY o.created_at DESC, o.id DESC
            LIMIT ?
            """,
            (self.tenant_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def completed_without_evaluation(self, db, *, updated_before: str, reminded_before: str, limit: int) -> List[dict]:
        """Completed orders still waiting for an evaluation whose last reminder is older than `reminded_before`."""
        rows = db.execute(
            """
            SELECT o.id, o.barcode, o.supplier_id, o.updated_at,
                   r.owner_user_id AS request_owner_user_id, r.unit_email AS request_unit_email,
                   s.name AS supplier_name
            FROM orders o
            LEFT JOIN requests r ON r.id = o.request_id AND r.tenant_id = o.tenant_id
            LEFT JOIN suppliers s ON s.id = o.supplier_id AND s.tenant_id = o.tenant_id
            WHERE o.tenant_id = ?
              AND o.status = 'completed'
              AND o.updated_at <= ?
              AND (o.evaluation_reminder_sent_at IS NULL OR o.evaluation_reminder_sent_at <= ?)
              AND NOT EXISTS (
                  SELECT 1 FROM evaluations e WHERE e.order_id = o.id AND e.tenant_id = o.tenant_id
              )
            ORDER BY o.updated_at ASC, o.id ASC
            LIMIT ?
            """,
            (self.tenant_id, updated_before, reminded_before, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
