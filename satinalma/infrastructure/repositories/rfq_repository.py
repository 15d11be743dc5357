from __future__ import annotations

from typing import Any, Dict, List

from satinalma.db import utc_now_text
from satinalma.domain.contracts import ListQuery
from satinalma.infrastructure.repositories.base import BaseRepository, Page


def find_invitation_by_token(db, token: str) -> dict | None:
    """Token lookups come from the public portal, before any tenant is known."""
    normalized = str(token or "").strip()
    if not normalized:
        return None
    row = db.execute(
        """
        SELECT *
        FROM rfq_suppliers
        WHERE token = ?
        LIMIT 1
        """,
        (normalized,),
    ).fetchone()
    return dict(row) if row else None


class RfqRepository(BaseRepository):
    table_name = "rfqs"

    def count_codes_with_prefix(self, db, prefix: str) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM rfqs WHERE rfx_code LIKE ? AND tenant_id = ?",
            (f"{prefix}%", self.tenant_id),
        ).fetchone()
        return int(row["total"] or 0) if row else 0

    def create(
        self,
        db,
        *,
        rfx_code: str,
        title: str,
        deadline: str | None,
        created_by_user_id: int | None,
        status: str = "ACTIVE",
    ) -> int:
        return db.insert(
            """
            INSERT INTO rfqs (rfx_code, title, status, deadline, created_by_user_id, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (rfx_code, title, status, deadline, created_by_user_id, self.tenant_id),
        )

    def link_request(self, db, rfq_id: int, request_id: int) -> None:
        db.execute(
            "INSERT INTO rfq_requests (rfq_id, request_id, tenant_id) VALUES (?, ?, ?)",
            (rfq_id, request_id, self.tenant_id),
        )

    def request_ids(self, db, rfq_id: int) -> List[int]:
        rows = db.execute(
            "SELECT request_id FROM rfq_requests WHERE rfq_id = ? AND tenant_id = ? ORDER BY id ASC",
            (rfq_id, self.tenant_id),
        ).fetchall()
        return [int(row["request_id"]) for row in rows]

    def add_item(
        self,
        db,
        rfq_id: int,
        *,
        request_item_id: int | None,
        name: str,
        quantity: float,
        unit: str,
        description: str | None,
        category_id: int | None,
    ) -> int:
        return db.insert(
            """
            INSERT INTO rfq_items (rfq_id, request_item_id, name, quantity, unit, description, category_id, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (rfq_id, request_item_id, name, quantity, unit, description, category_id, self.tenant_id),
        )

    def list_items(self, db, rfq_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT id, rfq_id, request_item_id, name, quantity, unit, description, category_id
            FROM rfq_items
            WHERE rfq_id = ? AND tenant_id = ?
            ORDER BY id ASC
            """,
            (rfq_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def category_ids(self, db, rfq_id: int) -> List[int]:
        rows = db.execute(
            """
            SELECT DISTINCT category_id
            FROM rfq_items
            WHERE rfq_id = ? AND tenant_id = ? AND category_id IS NOT NULL
            ORDER BY category_id
            """,
            (rfq_id, self.tenant_id),
        ).fetchall()
        return [int(row["category_id"]) for row in rows]

    def add_invitation(
        self,
        db,
        rfq_id: int,
        *,
        supplier_id: int | None,
        email: str,
        contact_name: str | None,
        company_name: str | None,
        token: str,
        token_expiry: str,
    ) -> int:
        return db.insert(
            """
            INSERT INTO rfq_suppliers (
                rfq_id, supplier_id, email, contact_name, company_name, token, token_expiry, stage, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, 'INVITED', ?)
            RETURNING id
            """,
            (rfq_id, supplier_id, email, contact_name, company_name, token, token_expiry, self.tenant_id),
        )

    def list_invitations(self, db, rfq_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT id, rfq_id, supplier_id, email, contact_name, company_name, token, token_expiry, stage, created_at
            FROM rfq_suppliers
            WHERE rfq_id = ? AND tenant_id = ?
            ORDER BY id ASC
            """,
            (rfq_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_invitation(self, db, invitation_id: int) -> dict | None:
        row = db.execute(
            "SELECT * FROM rfq_suppliers WHERE id = ? AND tenant_id = ? LIMIT 1",
            (invitation_id, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def update_invitation(self, db, invitation_id: int, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        updates = ", ".join(f"{key} = ?" for key in fields.keys())
        db.execute(
            f"UPDATE rfq_suppliers SET {updates} WHERE id = ? AND tenant_id = ?",
            (*fields.values(), invitation_id, self.tenant_id),
        )

    def list_page(self, db, query: ListQuery) -> Page:
        where = ["r.tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        self.apply_list_filters(
            query,
            where=where,
            params=params,
            search_columns=("r.rfx_code", "r.title"),
            status_column="r.status",
            date_column="r.created_at",
        )
        return self.fetch_page(
            db,
            select_sql=(
                "SELECT r.*, "
                "(SELECT COUNT(*) FROM rfq_items ri WHERE ri.rfq_id = r.id AND ri.tenant_id = r.tenant_id) AS item_count, "
                "(SELECT COUNT(*) FROM rfq_suppliers rs WHERE rs.rfq_id = r.id AND rs.tenant_id = r.tenant_id) "
                "AS supplier_count"
            ),
            from_sql="FROM rfqs r",
            where=where,
            params=params,
            order_by=query.order_by({"date": "r.created_at", "title": "r.title", "code": "r.rfx_code"}, tiebreaker="r.id"),
            page=query.page,
            page_size=query.page_size,
        )

    def set_status(self, db, rfq_id: int, status: str) -> None:
        self.update_fields(db, rfq_id, {"status": status})

    def find_offer(self, db, rfq_supplier_id: int, round_no: int) -> dict | None:
        row = db.execute(
            """
            SELECT *
            FROM offers
            WHERE rfq_supplier_id = ? AND round = ? AND tenant_id = ?
            LIMIT 1
            """,
            (rfq_supplier_id, round_no, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def get_offer(self, db, offer_id: int) -> dict | None:
        row = db.execute(
            "SELECT * FROM offers WHERE id = ? AND tenant_id = ? LIMIT 1",
            (offer_id, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def save_offer(
        self,
        db,
        *,
        rfq_id: int,
        rfq_supplier_id: int,
        round_no: int,
        total_amount: float,
        currency: str,
        notes: str | None,
    ) -> int:
        existing = self.find_offer(db, rfq_supplier_id, round_no)
        if existing:
            db.execute(
                """
                UPDATE offers
                SET total_amount = ?, currency = ?, notes = ?, updated_at = ?
                WHERE id = ? AND tenant_id = ?
                """,
                (total_amount, currency, notes, utc_now_text(), existing["id"], self.tenant_id),
            )
            return int(existing["id"])
        return db.insert(
            """
            INSERT INTO offers (rfq_id, rfq_supplier_id, round, total_amount, currency, notes, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (rfq_id, rfq_supplier_id, round_no, total_amount, currency, notes, self.tenant_id),
        )

    def replace_offer_items(self, db, offer_id: int, items: List[Dict[str, Any]]) -> None:
        db.execute("DELETE FROM offer_items WHERE offer_id = ? AND tenant_id = ?", (offer_id, self.tenant_id))
        for item in items:
            db.execute(
                """
                INSERT INTO offer_items (offer_id, rfq_item_id, quantity, unit_price, vat_rate, total_price, tenant_id)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    offer_id,
                    item["rfq_item_id"],
                    item["quantity"],
                    item["unit_price"],
                    item["vat_rate"],
                    item["total_price"],
                    self.tenant_id,
                ),
            )

    def list_offer_items(self, db, offer_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT oi.*, ri.name AS item_name, ri.unit AS item_unit
            FROM offer_items oi
            LEFT JOIN rfq_items ri ON ri.id = oi.rfq_item_id AND ri.tenant_id = oi.tenant_id
            WHERE oi.offer_id = ? AND oi.tenant_id = ?
            ORDER BY oi.id ASC
            """,
            (offer_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_offers(self, db, rfq_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT o.*, rs.email AS supplier_email, rs.company_name, rs.supplier_id
            FROM offers o
            JOIN rfq_suppliers rs ON rs.id = o.rfq_supplier_id AND rs.tenant_id = o.tenant_id
            WHERE o.rfq_id = ? AND o.tenant_id = ?
            ORDER BY o.total_amount ASC, o.id ASC
            """,
            (rfq_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def mark_winner(self, db, offer_id: int) -> None:
        db.execute(
            "UPDATE offers SET is_winner = 1, updated_at = ? WHERE id = ? AND tenant_id = ?",
            (utc_now_text(), offer_id, self.tenant_id),
        )
