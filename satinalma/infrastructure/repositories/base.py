from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterable, List, Sequence

from satinalma.db import utc_now_text
from satinalma.domain.contracts import ListQuery
from satinalma.procurement.validators import parse_date


class TenantScopeRequiredError(ValueError):
    """Raised when a repository is instantiated without tenant scope."""


@dataclass(frozen=True)
class Page:
    items: List[dict]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size

    def as_payload(self, *, include_total_pages: bool = False) -> dict:
        payload = {
            "items": self.items,
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
        }
        if include_total_pages:
            payload["total_pages"] = self.total_pages
        return payload


class BaseRepository:
    table_name: str = ""

    def __init__(self, *, tenant_id: str | None = None) -> None:
        scope = str(tenant_id or "").strip()
        if not scope:
            raise TenantScopeRequiredError("tenant_id is required for repository access")
        self.tenant_id = scope

    def get_by_id(self, db, row_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT *
            FROM {self.table_name}
            WHERE id = ? AND tenant_id = ?
            LIMIT 1
            """,
            (row_id, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def update_fields(self, db, row_id: int, fields: dict[str, Any], *, touch: bool = True) -> None:
        if not fields:
            return
        updates = [f"{key} = ?" for key in fields.keys()]
        params = list(fields.values())
        if touch:
            updates.append("updated_at = ?")
            params.append(utc_now_text())
        params.extend([row_id, self.tenant_id])
        db.execute(
            f"""
            UPDATE {self.table_name}
            SET {", ".join(updates)}
            WHERE id = ? AND tenant_id = ?
            """,
            tuple(params),
        )

    def delete_by_id(self, db, row_id: int) -> None:
        db.execute(
            f"DELETE FROM {self.table_name} WHERE id = ? AND tenant_id = ?",
            (row_id, self.tenant_id),
        )

    def apply_list_filters(
        self,
        query: ListQuery,
        *,
        where: List[str],
        params: List[Any],
        search_columns: Sequence[str] = (),
        status_column: str | None = None,
        date_column: str | None = None,
    ) -> None:
        if query.q and search_columns:
            needle = f"%{query.q.strip().lower()}%"
            where.append("(" + " OR ".join(f"LOWER(COALESCE({column}, '')) LIKE ?" for column in search_columns) + ")")
            params.extend([needle] * len(search_columns))
        if query.status and status_column:
            where.append(f"{status_column} = ?")
            params.append(query.status)
        if date_column:
            date_from = parse_date(query.date_from)
            if date_from:
                where.append(f"{date_column} >= ?")
                params.append(date_from.isoformat())
            date_to = parse_date(query.date_to)
            if date_to:
                where.append(f"{date_column} < ?")
                params.append((date_to + timedelta(days=1)).isoformat())

    def scoped_params(self, params: Iterable[Any] | None = None) -> tuple[Any, ...]:
        values = tuple(params or ())
        return (*values, self.tenant_id)

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    @staticmethod
    def placeholders(values: Sequence[Any]) -> str:
        return ",".join("?" for _ in values)

    def fetch_page(
        self,
        db,
        *,
        select_sql: str,
        from_sql: str,
        where: List[str],
        params: List[Any],
        order_by: str,
        page: int,
        page_size: int,
    ) -> Page:
        where_sql = " AND ".join(where) if where else "1 = 1"
        total_row = db.execute(
            f"SELECT COUNT(*) AS total {from_sql} WHERE {where_sql}",
            tuple(params),
        ).fetchone()
        total = int((dict(total_row) if total_row else {}).get("total") or 0)
        offset = max(0, (page - 1) * page_size)
        rows = db.execute(
            f"{select_sql} {from_sql} WHERE {where_sql} ORDER BY {order_by} LIMIT ? OFFSET ?",
            (*params, page_size, offset),
        ).fetchall()
        return Page(items=self.rows_to_dicts(rows), total=total, page=page, page_size=page_size)
