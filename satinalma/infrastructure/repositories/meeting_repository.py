from __future__ import annotations

from typing import Any, Dict, List

from satinalma.domain.contracts import ListQuery
from satinalma.infrastructure.repositories.base import BaseRepository, Page


class MeetingRepository(BaseRepository):
    table_name = "meetings"

    def create(
        self,
        db,
        *,
        title: str,
        start_at: str,
        end_at: str | None,
        description: str | None,
        location: str | None,
        reminder_minutes_before: int | None,
        organizer_user_id: int | None,
    ) -> int:
        return db.insert(
            """
            INSERT INTO meetings (
                title, description, location, start_at, end_at, organizer_user_id, reminder_minutes_before, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                title,
                description,
                location,
                start_at,
                end_at,
                organizer_user_id,
                reminder_minutes_before,
                self.tenant_id,
            ),
        )

    def add_attendee(self, db, meeting_id: int, *, user_id: int | None = None, email: str | None = None) -> None:
        db.execute(
            "INSERT INTO meeting_attendees (meeting_id, user_id, email, tenant_id) VALUES (?, ?, ?, ?)",
            (meeting_id, user_id, email, self.tenant_id),
        )

    def list_attendees(self, db, meeting_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT ma.id, ma.user_id, COALESCE(ma.email, u.email) AS email, u.display_name
            FROM meeting_attendees ma
            LEFT JOIN users u ON u.id = ma.user_id AND u.tenant_id = ma.tenant_id
            WHERE ma.meeting_id = ? AND ma.tenant_id = ?
            ORDER BY ma.id ASC
            """,
            (meeting_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def attendee_emails(self, db, meeting_id: int) -> List[str]:
        return [str(row["email"]) for row in self.list_attendees(db, meeting_id) if row.get("email")]

    def add_note(self, db, meeting_id: int, *, body: str, author_user_id: int | None) -> dict:
        note_id = db.insert(
            """
            INSERT INTO meeting_notes (meeting_id, author_user_id, body, tenant_id)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            (meeting_id, author_user_id, body, self.tenant_id),
        )
        row = db.execute(
            "SELECT id, meeting_id, author_user_id, body, created_at FROM meeting_notes WHERE id = ? AND tenant_id = ?",
            (note_id, self.tenant_id),
        ).fetchone()
        return dict(row)

    def list_notes(self, db, meeting_id: int) -> List[dict]:
        rows = db.execute(
            """
            SELECT id, meeting_id, author_user_id, body, created_at
            FROM meeting_notes
            WHERE meeting_id = ? AND tenant_id = ?
            ORDER BY id ASC
            """,
            (meeting_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_page(self, db, query: ListQuery) -> Page:
        where = ["tenant_id = ?"]
        params: List[Any] = [self.tenant_id]
        self.apply_list_filters(
            query,
            where=where,
            params=params,
            search_columns=("title",),
            status_column="status",
            date_column="start_at",
        )
        return self.fetch_page(
            db,
            select_sql="SELECT *",
            from_sql="FROM meetings",
            where=where,
            params=params,
            order_by=query.order_by({"date": "start_at", "title": "title"}),
            page=query.page,
            page_size=query.page_size,
        )

    def due_for_reminder(self, db, *, start_from: str, start_until: str) -> List[Dict[str, Any]]:
        rows = db.execute(
            """
            SELECT *
            FROM meetings
            WHERE tenant_id = ?
              AND status = 'planned'
              AND reminder_minutes_before IS NOT NULL
              AND last_reminder_sent_at IS NULL
              AND start_at >= ? AND start_at <= ?
            ORDER BY start_at ASC, id ASC
            """,
            (self.tenant_id, start_from, start_until),
        ).fetchall()
        return self.rows_to_dicts(rows)
