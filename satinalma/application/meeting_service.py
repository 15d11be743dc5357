from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List

from satinalma.application.messaging import paragraph, public_url, send_template_email
from satinalma.db import parse_db_timestamp, to_db_timestamp, utc_now, utc_now_text
from satinalma.domain.contracts import Actor, ListQuery, MeetingCreateInput, ServiceOutput
from satinalma.errors import NotFoundError, UserActionError, ValidationError
from satinalma.infrastructure.repositories.meeting_repository import MeetingRepository
from satinalma.procurement.validators import clean_text, is_valid_email, parse_datetime, parse_positive_int
from satinalma.realtime import get_hub, meeting_channel
from satinalma.ui_strings import status_keys_for_group, status_label


logger = logging.getLogger("satinalma.meetings")

MEETING_STATUSES = set(status_keys_for_group("meeting"))
REMINDER_LOOKAHEAD_MINUTES = 60
REMINDER_GRACE_MINUTES = 5


def _reminder_minutes(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        return None
    return minutes if minutes >= 0 else None


def meeting_input_from_payload(payload: Dict[str, Any]) -> MeetingCreateInput:
    title = clean_text(payload.get("title"))
    if not title:
        raise ValidationError(code="title_required")
    start_at = parse_datetime(payload.get("start_at"))
    if start_at is None:
        raise ValidationError(code="invalid_start_at")
    end_raw = clean_text(payload.get("end_at"))
    end_at = parse_datetime(end_raw)
    if end_raw and end_at is None:
        raise ValidationError(code="invalid_end_at")

    emails = payload.get("attendee_emails") or []
    user_ids = payload.get("attendee_user_ids") or []
    return MeetingCreateInput(
        title=title,
        start_at=to_db_timestamp(start_at),
        end_at=to_db_timestamp(end_at) if end_at else None,
        description=clean_text(payload.get("description")),
        location=clean_text(payload.get("location")),
        reminder_minutes_before=_reminder_minutes(payload.get("reminder_minutes_before")),
        attendee_emails=[
            email.strip() for email in emails if isinstance(email, str) and is_valid_email(email)
        ] if isinstance(emails, list) else [],
        attendee_user_ids=[
            user_id for user_id in (parse_positive_int(value) for value in user_ids) if user_id
        ] if isinstance(user_ids, list) else [],
    )


class MeetingService:
    def list(self, db, *, tenant_id: str, query: ListQuery) -> ServiceOutput:
        page = MeetingRepository(tenant_id=tenant_id).list_page(db, query)
        return ServiceOutput(payload=page.as_payload(include_total_pages=True))

    def get(self, db, *, tenant_id: str, meeting_id: int) -> ServiceOutput:
        repository = MeetingRepository(tenant_id=tenant_id)
        meeting = self._load(db, repository, meeting_id)
        meeting["status_label"] = status_label("meeting", meeting.get("status"))
        meeting["attendees"] = repository.list_attendees(db, meeting_id)
        meeting["notes"] = repository.list_notes(db, meeting_id)
        return ServiceOutput(payload=meeting)

    def create(self, db, *, actor: Actor, create_input: MeetingCreateInput) -> ServiceOutput:
        repository = MeetingRepository(tenant_id=actor.tenant_id)
        meeting_id = repository.create(
            db,
            title=create_input.title,
            start_at=create_input.start_at,
            end_at=create_input.end_at,
            description=create_input.description,
            location=create_input.location,
            reminder_minutes_before=create_input.reminder_minutes_before,
            organizer_user_id=actor.user_id,
        )
        seen_emails = set()
        for email in create_input.attendee_emails:
            if email.lower() in seen_emails:
                continue
            seen_emails.add(email.lower())
            repository.add_attendee(db, meeting_id, email=email)
        for user_id in sorted(set(create_input.attendee_user_ids)):
            repository.add_attendee(db, meeting_id, user_id=user_id)
        db.commit()

        meeting = repository.get_by_id(db, meeting_id)
        send_template_email(
            db,
            create_input.attendee_emails,
            subject=f"Toplantı Daveti: {create_input.title}",
            template="detail",
            category="meeting_invite",
            tenant_id=actor.tenant_id,
            title="Toplantı Daveti",
            intro="Toplantı bilgileri aşağıdadır.",
            fields=[
                {"label": "Başlık", "value": create_input.title},
                {"label": "Başlangıç", "value": create_input.start_at},
                {"label": "Bitiş", "value": create_input.end_at or "-"},
                {"label": "Yer", "value": create_input.location or "-"},
            ],
            action_url=public_url(f"/toplantilar/{meeting_id}"),
            action_text="Toplantıyı Aç",
        )
        get_hub().publish(meeting_channel(meeting_id), "meeting_created", meeting)
        return ServiceOutput(payload=meeting, status_code=201)

    def update(self, db, *, tenant_id: str, meeting_id: int, payload: Dict[str, Any]) -> ServiceOutput:
        repository = MeetingRepository(tenant_id=tenant_id)
        self._load(db, repository, meeting_id)

        fields: Dict[str, Any] = {}
        if "title" in payload:
            fields["title"] = clean_text(payload.get("title"))
            if not fields["title"]:
                raise ValidationError(code="title_required")
        for field in ("description", "location"):
            if field in payload:
                fields[field] = clean_text(payload.get(field))
        if "status" in payload:
            fields["status"] = clean_text(payload.get("status"))
            if fields["status"] not in MEETING_STATUSES:
                raise ValidationError(code="invalid_status")
        if "start_at" in payload:
            start_at = parse_datetime(payload.get("start_at"))
            if start_at is None:
                raise ValidationError(code="invalid_start_at")
            fields["start_at"] = to_db_timestamp(start_at)
            fields["last_reminder_sent_at"] = None
        if "end_at" in payload:
            end_raw = clean_text(payload.get("end_at"))
            end_at = parse_datetime(end_raw)
            if end_raw and end_at is None:
                raise ValidationError(code="invalid_end_at")
            fields["end_at"] = to_db_timestamp(end_at) if end_at else None
        if "reminder_minutes_before" in payload:
            fields["reminder_minutes_before"] = _reminder_minutes(payload.get("reminder_minutes_before"))
        if not fields:
            raise ValidationError(code="no_changes")

        repository.update_fields(db, meeting_id, fields)
        db.commit()
        meeting = repository.get_by_id(db, meeting_id)
        get_hub().publish(meeting_channel(meeting_id), "meeting_updated", meeting)
        return ServiceOutput(payload=meeting)

    def add_note(self, db, *, actor: Actor, meeting_id: int, body: Any) -> ServiceOutput:
        repository = MeetingRepository(tenant_id=actor.tenant_id)
        self._load(db, repository, meeting_id)
        text = clean_text(body)
        if not text:
            raise UserActionError(code="invalid_payload", details=["body"])
        note = repository.add_note(db, meeting_id, body=text, author_user_id=actor.user_id)
        db.commit()
        get_hub().publish(meeting_channel(meeting_id), "note_added", note)
        return ServiceOutput(payload=note, status_code=201)

    def ensure_exists(self, db, *, tenant_id: str, meeting_id: int) -> None:
        self._load(db, MeetingRepository(tenant_id=tenant_id), meeting_id)

    def send_reminders(self, db, *, tenant_id: str) -> dict:
        repository = MeetingRepository(tenant_id=tenant_id)
        now = utc_now()
        meetings = repository.due_for_reminder(
            db,
            start_from=to_db_timestamp(now),
            start_until=to_db_timestamp(now + timedelta(minutes=REMINDER_LOOKAHEAD_MINUTES)),
        )
        sent = 0
        errors = 0
        for meeting in meetings:
            start_at = parse_db_timestamp(meeting.get("start_at"))
            if start_at is None:
                continue
            minutes_to_start = (start_at - now).total_seconds() / 60.0
            threshold = int(meeting.get("reminder_minutes_before") or 0)
            if minutes_to_start > threshold + REMINDER_GRACE_MINUTES:
                continue
            try:
                self._remind(db, tenant_id=tenant_id, meeting=meeting, minutes_to_start=minutes_to_start)
            except Exception:  # noqa: BLE001
                errors += 1
                logger.exception("meeting_reminder_failed", extra={"meeting_id": meeting["id"], "tenant_id": tenant_id})
                continue
            repository.update_fields(db, int(meeting["id"]), {"last_reminder_sent_at": utc_now_text()})
            db.commit()
            sent += 1
        return {"ok": True, "sent": sent, "errors": errors}

    @staticmethod
    def _remind(db, *, tenant_id: str, meeting: Dict[str, Any], minutes_to_start: float) -> List[Any]:
        repository = MeetingRepository(tenant_id=tenant_id)
        minutes = max(0, int(round(minutes_to_start)))
        return send_template_email(
            db,
            repository.attendee_emails(db, int(meeting["id"])),
            subject=f"Toplantı Hatırlatması: {meeting['title']}",
            template="generic",
            category="meeting_reminder",
            tenant_id=tenant_id,
            title="Toplantı Hatırlatması",
            body=paragraph(f"{meeting['title']} toplantısı yaklaşık {minutes} dakika sonra başlayacak."),
            action_url=public_url(f"/toplantilar/{meeting['id']}"),
            action_text="Toplantıyı Aç",
        )

    @staticmethod
    def _load(db, repository: MeetingRepository, meeting_id: int) -> dict:
        meeting = repository.get_by_id(db, meeting_id)
        if not meeting:
            raise NotFoundError(code="meeting_not_found")
        return meeting
