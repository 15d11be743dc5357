from __future__ import annotations

from typing import Any, Dict, Iterable, List

from satinalma.domain.contracts import ListQuery
from satinalma.infrastructure.repositories.base import BaseRepository, Page


SUPPLIER_COLUMNS = (
    "name",
    "tax_id",
    "email",
    "phone",
    "address",
    "contact_name",
    "category_id",
    "active",
    "registration_status",
)


class SupplierRepository(BaseRepository):
    table_name = "suppliers"

    def list_page(self, db, query: ListQuery) -> Page:
        where = ["s.tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        self.apply_list_filters(
            query,
            where=where,
            params=params,
            search_columns=("s.name", "s.tax_id", "s.email", "s.phone"),
            status_column="s.registration_status",
            date_column="s.created_at",
        )
        active = (query.filter("active") or "").lower()
        if active in {"true", "1"}:
            where.append("s.active = 1")
        elif active in {"false", "0"}:
            where.append("s.active = 0")
        category_id = query.filter("category_id")
        if category_id and category_id.isdigit():
            where.append("s.category_id = ?")
            params.append(int(category_id))

        return self.fetch_page(
            db,
            select_sql="SELECT s.*, c.name AS category_name",
            from_sql="FROM suppliers s LEFT JOIN categories c ON c.id = s.category_id AND c.tenant_id = s.tenant_id",
            where=where,
            params=params,
            order_by=query.order_by({"date": "s.created_at", "name": "s.name"}, tiebreaker="s.id"),
            page=query.page,
            page_size=query.page_size,
        )

    def create(self, db, *, values: Dict[str, Any]) -> int:
        return db.insert(
            """
            INSERT INTO suppliers (
                name, tax_id, email, phone, address, contact_name, category_id, active, registration_status, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                values["name"],
                values.get("tax_id"),
                values.get("email"),
                values.get("phone"),
                values.get("address"),
                values.get("contact_name"),
                values.get("category_id"),
                0 if values.get("active") is False else 1,
                values.get("registration_status") or "approved",
                self.tenant_id,
            ),
        )

    def find_by_tax_id(self, db, tax_id: str, *, exclude_id: int | None = None) -> dict | None:
        sql = "SELECT id, name FROM suppliers WHERE tax_id = ? AND tenant_id = ?"
        params: List[Any] = [tax_id, self.tenant_id]
        if exclude_id:
            sql += " AND id <> ?"
            params.append(exclude_id)
        row = db.execute(sql + " LIMIT 1", tuple(params)).fetchone()
        return dict(row) if row else None

    def find_by_email(self, db, email: str) -> dict | None:
        row = db.execute(
            """
            SELECT *
            FROM suppliers
            WHERE LOWER(email) = ? AND tenant_id = ?
            ORDER BY id
            LIMIT 1
            """,
            (email.strip().lower(), self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def count_orders(self, db, supplier_id: int) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM orders WHERE supplier_id = ? AND tenant_id = ?",
            (supplier_id, self.tenant_id),
        ).fetchone()
        return int(row["total"] or 0) if row else 0

    def list_notifiable_for_categories(self, db, category_ids: Iterable[int]) -> List[dict]:
        ids = sorted({int(category_id) for category_id in category_ids if category_id})
        if not ids:
            return []
        rows = db.execute(
            f"""
            SELECT id, name, email, contact_name, category_id
            FROM suppliers
            WHERE tenant_id = ?
              AND active = 1
              AND registration_status = 'approved'
              AND email IS NOT NULL AND email <> ''
              AND category_id IN ({self.placeholders(ids)})
            ORDER BY id
            """,
            (self.tenant_id, *ids),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count_all(self, db, *, active_only: bool = False) -> int:
        sql = "SELECT COUNT(*) AS total FROM suppliers WHERE tenant_id = ?"
        if active_only:
            sql += " AND active = 1"
        row = db.execute(sql, (self.tenant_id,)).fetchone()
        return int(row["total"] or 0) if row else 0


class CategoryRepository(BaseRepository):
    table_name = "categories"

    def list_all(self, db) -> List[dict]:
        rows = db.execute(
            "SELECT id, name, created_at FROM categories WHERE tenant_id = ? ORDER BY name ASC, id ASC",
            (self.tenant_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def find_by_name(self, db, name: str) -> dict | None:
        row = db.execute(
            "SELECT id, name FROM categories WHERE LOWER(name) = ? AND tenant_id = ? LIMIT 1",
            (name.strip().lower(), self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def create(self, db, *, name: str) -> int:
        return db.insert(
            "INSERT INTO categories (name, tenant_id) VALUES (?, ?) RETURNING id",
            (name, self.tenant_id),
        )
