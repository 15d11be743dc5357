from __future__ import annotations

from typing import Iterable, List

from satinalma.infrastructure.repositories.base import BaseRepository


class UserRepository(BaseRepository):
    table_name = "users"

    def get_contact(self, db, user_id: int | None) -> dict | None:
        if not user_id:
            return None
        row = db.execute(
            """
            SELECT id, email, display_name, role, unit_name, unit_email
            FROM users
            WHERE id = ? AND tenant_id = ? AND active = 1
            LIMIT 1
            """,
            (user_id, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def emails_for(self, db, user_ids: Iterable[int | None]) -> List[str]:
        ids = sorted({int(user_id) for user_id in user_ids if user_id})
        if not ids:
            return []
        rows = db.execute(
            f"""
            SELECT email
            FROM users
            WHERE id IN ({self.placeholders(ids)}) AND tenant_id = ? AND active = 1
            ORDER BY id
            """,
            self.scoped_params(ids),
        ).fetchall()
        return [str(row["email"]) for row in rows if row["email"]]

    def create(
        self,
        db,
        *,
        email: str,
        display_name: str | None = None,
        role: str = "user",
        unit_name: str | None = None,
        unit_email: str | None = None,
        password_hash: str | None = None,
    ) -> int:
        return db.insert(
            """
            INSERT INTO users (email, password_hash, display_name, role, unit_name, unit_email, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (email, password_hash, display_name, role, unit_name, unit_email, self.tenant_id),
        )
