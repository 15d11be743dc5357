from __future__ import annotations

from satinalma.db import utc_now_text
from satinalma.infrastructure.repositories.base import BaseRepository


class StatusEventRepository(BaseRepository):
    table_name = "status_events"

    def add_event(
        self,
        db,
        *,
        entity: str,
        entity_id: int,
        from_status: str | None,
        to_status: str,
        reason: str | None,
        actor_user_id: int | None = None,
    ) -> int:
        return db.insert(
            """
            INSERT INTO status_events (entity, entity_id, from_status, to_status, reason, actor_user_id, occurred_at, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (entity, entity_id, from_status, to_status, reason, actor_user_id, utc_now_text(), self.tenant_id),
        )

    def list_for_entity(self, db, *, entity: str, entity_id: int, limit: int = 120) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, entity, entity_id, from_status, to_status, reason, actor_user_id, occurred_at, tenant_id
            FROM status_events
            WHERE entity = ? AND entity_id = ? AND tenant_id = ?
            ORDER BY occurred_at DESC, id DESC
            LIMIT ?
            """,
            (entity, entity_id, self.tenant_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
