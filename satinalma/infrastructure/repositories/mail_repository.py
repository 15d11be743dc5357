from __future__ import annotations

from typing import Any, Dict, List

from satinalma.db import utc_now_text


class SmtpSettingsRepository:
    """SMTP transports are shared by every tenant of the installation."""

    def list_all(self, db) -> List[dict]:
        rows = db.execute(
            """
            SELECT id, key, host, port, secure, user_name, password, from_address, from_name,
                   is_default, active, created_at, updated_at
            FROM smtp_settings
            ORDER BY is_default DESC, key ASC
            """
        ).fetchall()
        return [dict(row) for row in rows]

    def get_by_id(self, db, setting_id: int) -> dict | None:
        row = db.execute("SELECT * FROM smtp_settings WHERE id = ?", (setting_id,)).fetchone()
        return dict(row) if row else None

    def get_by_key(self, db, key: str) -> dict | None:
        row = db.execute("SELECT * FROM smtp_settings WHERE key = ?", (key,)).fetchone()
        return dict(row) if row else None

    def resolve_active(self, db, key: str | None = None) -> dict | None:
        if key:
            row = db.execute(
                "SELECT * FROM smtp_settings WHERE key = ? AND active = 1",
                (key,),
            ).fetchone()
            if row:
                return dict(row)
        row = db.execute(
            "SELECT * FROM smtp_settings WHERE is_default = 1 AND active = 1 ORDER BY id LIMIT 1"
        ).fetchone()
        if row:
            return dict(row)
        row = db.execute("SELECT * FROM smtp_settings WHERE active = 1 ORDER BY id LIMIT 1").fetchone()
        return dict(row) if row else None

    def create(self, db, *, values: Dict[str, Any]) -> int:
        if values.get("is_default"):
            self._clear_default(db)
        return db.insert(
            """
            INSERT INTO smtp_settings (
                key, host, port, secure, user_name, password, from_address, from_name, is_default, active
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                values["key"],
                values["host"],
                int(values["port"]),
                1 if values.get("secure") else 0,
                values["user_name"],
                values.get("password"),
                values["from_address"],
                values.get("from_name"),
                1 if values.get("is_default") else 0,
                0 if values.get("active") is False else 1,
            ),
        )

    def update(self, db, setting_id: int, *, values: Dict[str, Any]) -> None:
        if values.get("is_default"):
            self._clear_default(db, except_id=setting_id)
        columns = []
        params: List[Any] = []
        for column, value in values.items():
            if column in {"secure", "is_default", "active"}:
                value = 1 if value else 0
            columns.append(f"{column} = ?")
            params.append(value)
        if not columns:
            return
        columns.append("updated_at = ?")
        params.append(utc_now_text())
        params.append(setting_id)
        db.execute(f"UPDATE smtp_settings SET {', '.join(columns)} WHERE id = ?", tuple(params))

    def delete(self, db, setting_id: int) -> None:
        db.execute("DELETE FROM smtp_settings WHERE id = ?", (setting_id,))

    @staticmethod
    def _clear_default(db, except_id: int | None = None) -> None:
        if except_id is None:
            db.execute("UPDATE smtp_settings SET is_default = 0 WHERE is_default = 1")
            return
        db.execute(
            "UPDATE smtp_settings SET is_default = 0 WHERE is_default = 1 AND id <> ?",
            (except_id,),
        )


class EmailLogRepository:
    def log(
        self,
        db,
        *,
        to_address: str | None,
        subject: str | None,
        category: str,
        status: str,
        attempts: int = 0,
        last_error: str | None = None,
        message_id: str | None = None,
        payload_html: str | None = None,
        smtp_key: str | None = None,
        tenant_id: str | None = None,
    ) -> int:
        now = utc_now_text()
        return db.insert(
            """
            INSERT INTO email_log (
                to_address, subject, category, status, attempts, last_error, message_id,
                payload_html, smtp_key, tenant_id, sent_at, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                to_address,
                subject,
                category,
                status,
                attempts,
                last_error,
                message_id,
                payload_html,
                smtp_key,
                tenant_id,
                now if status == "sent" else None,
                now,
                now,
            ),
        )

    def list_deferred(self, db, *, limit: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM email_log
            WHERE status = 'deferred'
            ORDER BY created_at ASC, id ASC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [dict(row) for row in rows]

    def mark_result(
        self,
        db,
        log_id: int,
        *,
        status: str,
        attempts: int,
        last_error: str | None = None,
        message_id: str | None = None,
    ) -> None:
        now = utc_now_text()
        db.execute(
            """
            UPDATE email_log
            SET status = ?, attempts = ?, last_error = ?, message_id = COALESCE(?, message_id),
                sent_at = CASE WHEN ? = 'sent' THEN ? ELSE sent_at END, updated_at = ?
            WHERE id = ?
            """,
            (status, attempts, last_error, message_id, status, now, now, log_id),
        )

    def get_by_id(self, db, log_id: int) -> dict | None:
        row = db.execute("SELECT * FROM email_log WHERE id = ?", (log_id,)).fetchone()
        return dict(row) if row else None

    def count_by_status(self, db) -> Dict[str, int]:
        rows = db.execute("SELECT status, COUNT(*) AS total FROM email_log GROUP BY status").fetchall()
        return {str(row["status"]): int(row["total"]) for row in rows}
