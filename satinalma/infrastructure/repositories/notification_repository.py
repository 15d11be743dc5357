from __future__ import annotations

import json
from typing import Any, Dict, List

from satinalma.db import utc_now_text
from satinalma.infrastructure.repositories.base import BaseRepository


PREFERENCE_FLAGS = ("email_enabled", "in_app_enabled", "digest_enabled")


class NotificationRepository(BaseRepository):
    table_name = "notifications"

    def create(
        self,
        db,
        *,
        user_id: int,
        title: str,
        body: str | None,
        type: str = "info",
        meta: Dict[str, Any] | None = None,
    ) -> dict:
        created_at = utc_now_text()
        notification_id = db.insert(
            """
            INSERT INTO notifications (user_id, title, body, type, meta, created_at, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                user_id,
                title,
                body,
                type,
                json.dumps(meta, ensure_ascii=False) if meta else None,
                created_at,
                self.tenant_id,
            ),
        )
        return {
            "id": notification_id,
            "user_id": user_id,
            "title": title,
            "body": body,
            "type": type,
            "created_at": created_at,
        }

    def list_for_user(self, db, user_id: int, *, limit: int = 20, unread_only: bool = False) -> List[dict]:
        sql = """
            SELECT id, user_id, title, body, type, meta, read_at, created_at
            FROM notifications
            WHERE user_id = ? AND tenant_id = ?
        """
        if unread_only:
            sql += " AND read_at IS NULL"
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        rows = db.execute(sql, (user_id, self.tenant_id, int(limit))).fetchall()
        items = self.rows_to_dicts(rows)
        for item in items:
            item["meta"] = json.loads(item["meta"]) if item.get("meta") else None
            item["read"] = item.get("read_at") is not None
        return items

    def mark_read(self, db, notification_id: int, *, user_id: int) -> bool:
        row = db.execute(
            "SELECT id FROM notifications WHERE id = ? AND user_id = ? AND tenant_id = ? LIMIT 1",
            (notification_id, user_id, self.tenant_id),
        ).fetchone()
        if not row:
            return False
        db.execute(
            "UPDATE notifications SET read_at = COALESCE(read_at, ?) WHERE id = ? AND tenant_id = ?",
            (utc_now_text(), notification_id, self.tenant_id),
        )
        return True

    def mark_all_read(self, db, *, user_id: int) -> int:
        cursor = db.execute(
            "UPDATE notifications SET read_at = ? WHERE user_id = ? AND tenant_id = ? AND read_at IS NULL",
            (utc_now_text(), user_id, self.tenant_id),
        )
        return max(0, int(getattr(cursor, "rowcount", 0) or 0))

    def get_preferences(self, db, user_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT user_id, email_enabled, in_app_enabled, digest_enabled, updated_at
            FROM notification_preferences
            WHERE user_id = ? AND tenant_id = ?
            LIMIT 1
            """,
            (user_id, self.tenant_id),
        ).fetchone()
        return _preferences_payload(dict(row)) if row else None

    def get_or_create_preferences(self, db, user_id: int) -> dict:
        existing = self.get_preferences(db, user_id)
        if existing:
            return existing
        db.execute(
            "INSERT INTO notification_preferences (user_id, tenant_id) VALUES (?, ?)",
            (user_id, self.tenant_id),
        )
        return self.get_preferences(db, user_id)

    def update_preferences(self, db, user_id: int, flags: Dict[str, bool]) -> dict:
        self.get_or_create_preferences(db, user_id)
        updates = {key: 1 if flags[key] else 0 for key in PREFERENCE_FLAGS if key in flags}
        if updates:
            assignments = ", ".join(f"{key} = ?" for key in updates)
            db.execute(
                f"""
                UPDATE notification_preferences
                SET {assignments}, updated_at = ?
                WHERE user_id = ? AND tenant_id = ?
                """,
                (*updates.values(), utc_now_text(), user_id, self.tenant_id),
            )
        return self.get_preferences(db, user_id)


def _preferences_payload(row: dict) -> dict:
    payload = {key: bool(row.get(key)) for key in PREFERENCE_FLAGS}
    payload["user_id"] = row.get("user_id")
    payload["updated_at"] = row.get("updated_at")
    return payload
