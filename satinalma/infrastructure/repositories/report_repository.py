from __future__ import annotations

from typing import Any, List

from satinalma.infrastructure.repositories.base import BaseRepository


COUNTED_TABLES = ("requests", "orders")


class ReportRepository(BaseRepository):
    def count_created(
        self,
        db,
        table: str,
        *,
        since: str | None = None,
        before: str | None = None,
        status: str | None = None,
    ) -> int:
        if table not in COUNTED_TABLES:
            raise ValueError(f"unsupported table: {table}")
        where = ["tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        if since:
            where.append("created_at >= ?")
            params.append(since)
        if before:
            where.append("created_at < ?")
            params.append(before)
        if status:
            where.append("status = ?")
            params.append(status)
        row = db.execute(
            f"SELECT COUNT(*) AS total FROM {table} WHERE {' AND '.join(where)}",
            tuple(params),
        ).fetchone()
        return int(row["total"] or 0) if row else 0

    def spend_by_supplier(self, db, *, date_from: str | None = None, date_before: str | None = None) -> List[dict]:
        where = ["o.tenant_id = ?", "o.status <> 'cancelled'"]
        params: List[Any] = [self.tenant_id]
        if date_from:
            where.append("o.created_at >= ?")
            params.append(date_from)
        if date_before:
            where.append("o.created_at < ?")
            params.append(date_before)
        rows = db.execute(
            f"""
            SELECT o.supplier_id, COALESCE(s.name, '-') AS supplier_name,
                   COUNT(o.id) AS order_count, COALESCE(SUM(o.realized_total), 0) AS total_spend
            FROM orders o
            LEFT JOIN suppliers s ON s.id = o.supplier_id AND s.tenant_id = o.tenant_id
            WHERE {" AND ".join(where)}
            GROUP BY o.supplier_id, s.name
            ORDER BY total_spend DESC, supplier_name ASC
            """,
            tuple(params),
        ).fetchall()
        items = self.rows_to_dicts(rows)
        for item in items:
            item["total_spend"] = round(float(item["total_spend"] or 0), 2)
            item["order_count"] = int(item["order_count"] or 0)
        return items
