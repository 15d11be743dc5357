from __future__ import annotations

from typing import Any, List

from satinalma.db import utc_now_text
from satinalma.infrastructure.repositories.base import BaseRepository


class DeliveryRepository(BaseRepository):
    table_name = "deliveries"

    def find_by_code(self, db, code: str) -> dict | None:
        row = db.execute(
            "SELECT id, code FROM deliveries WHERE code = ? AND tenant_id = ? LIMIT 1",
            (code, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def create(
        self,
        db,
        *,
        order_id: int,
        code: str,
        status: str,
        delivered_at: str | None,
        received_by: str | None,
        notes: str | None,
    ) -> int:
        return db.insert(
            """
            INSERT INTO deliveries (order_id, code, status, delivered_at, received_by, notes, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (order_id, code, status, delivered_at or utc_now_text(), received_by, notes, self.tenant_id),
        )

    def add_item(
        self,
        db,
        delivery_id: int,
        *,
        order_item_id: int,
        quantity: float,
        approved_quantity: float | None,
    ) -> int:
        return db.insert(
            """
            INSERT INTO delivery_items (delivery_id, order_item_id, quantity, approved_quantity, tenant_id)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (delivery_id, order_item_id, quantity, approved_quantity, self.tenant_id),
        )

    def fill_approved_quantities(self, db, delivery_id: int) -> None:
        db.execute(
            """
            UPDATE delivery_items
            SET approved_quantity = quantity
            WHERE delivery_id = ? AND tenant_id = ? AND approved_quantity IS NULL
            """,
            (delivery_id, self.tenant_id),
        )

    def list_for_order(self, db, order_id: int) -> List[dict]:
        """Deliveries of an order with their lines nested under ``items``."""
        deliveries = self.rows_to_dicts(
            db.execute(
                """
                SELECT id, order_id, code, status, delivered_at, received_by, notes, created_at
                FROM deliveries
                WHERE order_id = ? AND tenant_id = ?
                ORDER BY id ASC
                """,
                (order_id, self.tenant_id),
            ).fetchall()
        )
        return self._attach_items(db, deliveries)

    def list_filtered(self, db, *, order_id: int | None = None, status: str | None = None, limit: int = 200) -> List[dict]:
        where = ["d.tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        if order_id:
            where.append("d.order_id = ?")
            params.append(order_id)
        if status:
            where.append("d.status = ?")
            params.append(status)
        rows = db.execute(
            f"""
            SELECT d.id, d.order_id, d.code, d.status, d.delivered_at, d.received_by, d.notes, d.created_at,
                   o.barcode AS order_barcode
            FROM deliveries d
            LEFT JOIN orders o ON o.id = d.order_id AND o.tenant_id = d.tenant_id
            WHERE {" AND ".join(where)}
            ORDER BY d.created_at DESC, d.id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self._attach_items(db, self.rows_to_dicts(rows))

    def _attach_items(self, db, deliveries: List[dict]) -> List[dict]:
        if not deliveries:
            return deliveries
        ids = [int(delivery["id"]) for delivery in deliveries]
        rows = db.execute(
            f"""
            SELECT di.id, di.delivery_id, di.order_item_id, di.quantity, di.approved_quantity, oi.name AS item_name
            FROM delivery_items di
            LEFT JOIN order_items oi ON oi.id = di.order_item_id AND oi.tenant_id = di.tenant_id
            WHERE di.delivery_id IN ({self.placeholders(ids)}) AND di.tenant_id = ?
            ORDER BY di.id ASC
            """,
            self.scoped_params(ids),
        ).fetchall()
        by_delivery: dict[int, List[dict]] = {delivery_id: [] for delivery_id in ids}
        for row in rows:
            by_delivery[int(row["delivery_id"])].append(dict(row))
        for delivery in deliveries:
            delivery["items"] = by_delivery.get(int(delivery["id"]), [])
        return deliveries
