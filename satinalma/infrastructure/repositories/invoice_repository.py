from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List, Sequence

from satinalma.domain.contracts import InvoiceCreateInput, ListQuery
from satinalma.infrastructure.repositories.base import BaseRepository, Page


DUE_SOON_DAYS = 7


class InvoiceRepository(BaseRepository):
    table_name = "invoices"

    def find_by_number(self, db, number: str) -> dict | None:
        row = db.execute(
            "SELECT id, number FROM invoices WHERE number = ? AND tenant_id = ? LIMIT 1",
            (number, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def create(self, db, *, data: InvoiceCreateInput, order_id: int | None) -> int:
        return db.insert(
            """
            INSERT INTO invoices (number, order_no, order_id, amount, currency, due_date, status, notes, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                data.number,
                data.order_no,
                order_id,
                data.amount,
                data.currency,
                data.due_date,
                data.status,
                data.notes,
                self.tenant_id,
            ),
        )

    def add_item(self, db, invoice_id: int, item: Dict[str, Any]) -> None:
        db.execute(
            """
            INSERT INTO invoice_items (invoice_id, name, sku, quantity, unit_price, tax_rate, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                invoice_id,
                item["name"],
                item.get("sku"),
                item["quantity"],
                item.get("unit_price") or 0,
                item.get("tax_rate") or 0,
                self.tenant_id,
            ),
        )

    def list_items(self, db, invoice_ids: Sequence[int]) -> Dict[int, List[dict]]:
        ids = [int(invoice_id) for invoice_id in invoice_ids]
        grouped: Dict[int, List[dict]] = {invoice_id: [] for invoice_id in ids}
        if not ids:
            return grouped
        rows = db.execute(
            f"""
            SELECT id, invoice_id, name, sku, quantity, unit_price, tax_rate
            FROM invoice_items
            WHERE invoice_id IN ({self.placeholders(ids)}) AND tenant_id = ?
            ORDER BY id ASC
            """,
            self.scoped_params(ids),
        ).fetchall()
        for row in rows:
            grouped[int(row["invoice_id"])].append(dict(row))
        return grouped

    def list_for_order(self, db, order_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM invoices
            WHERE order_id = ? AND tenant_id = ?
            ORDER BY id ASC
            """,
            (order_id, self.tenant_id),
        ).fetchall()
        invoices = self.rows_to_dicts(rows)
        items = self.list_items(db, [invoice["id"] for invoice in invoices])
        for invoice in invoices:
            invoice["items"] = items.get(int(invoice["id"]), [])
        return invoices

    def get_detail(self, db, invoice_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT i.*, o.barcode AS order_barcode, s.name AS supplier_name
            FROM invoices i
            LEFT JOIN orders o ON o.id = i.order_id AND o.tenant_id = i.tenant_id
            LEFT JOIN suppliers s ON s.id = o.supplier_id AND s.tenant_id = i.tenant_id
            WHERE i.id = ? AND i.tenant_id = ?
            LIMIT 1
            """,
            (invoice_id, self.tenant_id),
        ).fetchone()
        if not row:
            return None
        invoice = dict(row)
        invoice["items"] = self.list_items(db, [invoice_id]).get(invoice_id, [])
        return invoice

    def list_page(self, db, query: ListQuery, *, today: date) -> Page:
        where = ["i.tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        self.apply_list_filters(
            query,
            where=where,
            params=params,
            search_columns=("i.number", "i.order_no"),
            status_column="i.status",
            date_column="i.created_at",
        )
        if query.filter("due_only") in {"1", "true"}:
            where.append("i.status = 'pending' AND i.due_date <= ?")
            params.append((today + timedelta(days=DUE_SOON_DAYS)).isoformat())

        return self.fetch_page(
            db,
            select_sql="SELECT i.*, o.barcode AS order_barcode, s.name AS supplier_name",
            from_sql=(
                "FROM invoices i "
                "LEFT JOIN orders o ON o.id = i.order_id AND o.tenant_id = i.tenant_id "
                "LEFT JOIN suppliers s ON s.id = o.supplier_id AND s.tenant_id = i.tenant_id"
            ),
            where=where,
            params=params,
            order_by=query.order_by({"date": "i.created_at", "amount": "i.amount", "due": "i.due_date"}, tiebreaker="i.id"),
            page=query.page,
            page_size=query.page_size,
        )
