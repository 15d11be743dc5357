from __future__ import annotations

from typing import Any, Dict, List

from satinalma.infrastructure.repositories.base import BaseRepository, Page


class AuditRepository(BaseRepository):
    table_name = "audit_logs"

    def add(
        self,
        db,
        *,
        action: str,
        entity_type: str,
        entity_id: str | None,
        user_id: int | None,
        old_data: str | None,
        new_data: str | None,
        ip_address: str | None,
        user_agent: str | None,
    ) -> int:
        return db.insert(
            """
            INSERT INTO audit_logs (
                user_id, action, entity_type, entity_id, old_data, new_data, ip_address, user_agent, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (user_id, action, entity_type, entity_id, old_data, new_data, ip_address, user_agent, self.tenant_id),
        )

    def list_page(self, db, *, filters: Dict[str, Any], page: int, page_size: int) -> Page:
        where: List[str] = ["a.tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        for column in ("entity_type", "entity_id", "user_id", "action"):
            value = filters.get(column)
            if value not in (None, ""):
                where.append(f"a.{column} = ?")
                params.append(value)
        return self.fetch_page(
            db,
            select_sql="SELECT a.*, u.display_name AS user_name, u.email AS user_email",
            from_sql="FROM audit_logs a LEFT JOIN users u ON u.id = a.user_id AND u.tenant_id = a.tenant_id",
            where=where,
            params=params,
            order_by="a.created_at DESC, a.id DESC",
            page=page,
            page_size=page_size,
        )
