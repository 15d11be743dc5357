import unittest
from datetime import datetime, timedelta, timezone

from satinalma.realtime import get_hub, meeting_channel
from tests.helpers.api_case import ApiTestCase


def _in_minutes(minutes: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(minutes=minutes)).replace(microsecond=0).isoformat()


def _chunk_text(chunk) -> str:
    return chunk.decode("utf-8") if isinstance(chunk, bytes) else chunk


class MeetingsApiTest(ApiTestCase):
    config_overrides = {"SSE_PING_SECONDS": 0.05, "SSE_RETRY_MS": 2500}

    def _create_meeting(self, **overrides) -> dict:
        payload = {"title": "Tedarikçi görüşmesi", "start_at": _in_minutes(120), "location": "Toplantı Odası 2"}
        payload.update(overrides)
        response = self.client.post("/api/meetings", json=payload, headers=self.headers)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()

    def test_create_meeting_invites_attendees(self) -> None:
        user_id = self.seed_user("katilimci@firma.com", display_name="Katılımcı")
        meeting = self._create_meeting(
            start_at="2099-03-01T12:00:00+03:00",
            attendee_emails=["dis@firma.com", "DIS@firma.com", "gecersiz"],
            attendee_user_ids=[user_id, str(user_id)],
        )

        self.assertEqual(meeting["start_at"], "2099-03-01 09:00:00")
        self.assertEqual(meeting["status"], "planned")

        detail = self.client.get(f"/api/meetings/{meeting['id']}", headers=self.headers).get_json()
        self.assertEqual(detail["status_label"], "Planlandı")
        self.assertEqual(
            [row["email"] for row in detail["attendees"]],
            ["dis@firma.com", "katilimci@firma.com"],
        )
        invites = self.outbox_to("dis@firma.com")
        self.assertEqual([message.subject for message in invites], ["Toplantı Daveti: Tedarikçi görüşmesi"])

    def test_create_validation(self) -> None:
        missing_title = self.client.post("/api/meetings", json={"start_at": _in_minutes(10)}, headers=self.headers)
        self.assertEqual(missing_title.status_code, 400)
        self.assertEqual(missing_title.get_json()["error"], "title_required")

        bad_start = self.client.post("/api/meetings", json={"title": "X", "start_at": "öğleden sonra"}, headers=self.headers)
        self.assertEqual(bad_start.get_json()["error"], "invalid_start_at")

        bad_end = self.client.post(
            "/api/meetings",
            json={"title": "X", "start_at": _in_minutes(10), "end_at": "sonra"},
            headers=self.headers,
        )
        self.assertEqual(bad_end.get_json()["error"], "invalid_end_at")

    def test_update_publishes_to_meeting_channel(self) -> None:
        meeting = self._create_meeting()
        received = []
        unsubscribe = get_hub().subscribe(meeting_channel(meeting["id"]), received.append)
        try:
            response = self.client.patch(
                f"/api/meetings/{meeting['id']}",
                json={"status": "completed", "title": "Yeni başlık"},
                headers=self.headers,
            )
        finally:
            unsubscribe()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["title"], "Yeni başlık")
        self.assertEqual([message.event for message in received], ["meeting_updated"])
        self.assertEqual(received[0].payload["status"], "completed")

        invalid = self.client.patch(f"/api/meetings/{meeting['id']}", json={"status": "ertelendi"}, headers=self.headers)
        self.assertEqual(invalid.get_json()["error"], "invalid_status")
        nothing = self.client.patch(f"/api/meetings/{meeting['id']}", json={}, headers=self.headers)
        self.assertEqual(nothing.get_json()["error"], "no_changes")
        missing = self.client.patch("/api/meetings/999", json={"title": "Y"}, headers=self.headers)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()["error"], "meeting_not_found")

    def test_notes(self) -> None:
        author_id = self.seed_user("not@firma.com")
        meeting = self._create_meeting()
        received = []
        get_hub().subscribe(meeting_channel(meeting["id"]), received.append)

        response = self.client.post(
            f"/api/meetings/{meeting['id']}/notes",
            json={"body": "  Fiyat teklifi revize edilecek. "},
            headers=self.user_headers(author_id),
        )
        self.assertEqual(response.status_code, 201)
        note = response.get_json()
        self.assertEqual(note["body"], "Fiyat teklifi revize edilecek.")
        self.assertEqual(note["author_user_id"], author_id)
        self.assertEqual(received[0].event, "note_added")
        self.assertEqual(received[0].payload["id"], note["id"])

        empty = self.client.post(f"/api/meetings/{meeting['id']}/notes", json={"body": " "}, headers=self.headers)
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.get_json()["details"], ["body"])

        detail = self.client.get(f"/api/meetings/{meeting['id']}", headers=self.headers).get_json()
        self.assertEqual([row["id"] for row in detail["notes"]], [note["id"]])

    def test_list_includes_total_pages(self) -> None:
        for index in range(3):
            self._create_meeting(title=f"Toplantı {index}")

        payload = self.client.get("/api/meetings?page_size=2", headers=self.headers).get_json()
        self.assertEqual(payload["total"], 3)
        self.assertEqual(payload["total_pages"], 2)
        self.assertEqual(len(payload["items"]), 2)

    def test_meeting_stream_relays_named_events(self) -> None:
        meeting = self._create_meeting()
        response = self.client.get(f"/api/meetings/{meeting['id']}/stream", headers=self.headers, buffered=False)
        try:
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.mimetype, "text/event-stream")
            chunks = iter(response.response)
            preamble = [_chunk_text(next(chunks)) for _ in range(3)]
            self.assertEqual(preamble, [":connected\n\n", "retry: 2500\n\n", 'event: ready\ndata: {"ok":true}\n\n'])

            self.assertEqual(get_hub().subscriber_count(meeting_channel(meeting["id"])), 1)
            get_hub().publish(meeting_channel(meeting["id"]), "note_added", {"id": 7, "body": "Not"})
            self.assertEqual(_chunk_text(next(chunks)), 'event: note_added\ndata: {"id":7,"body":"Not"}\n\n')
            self.assertEqual(_chunk_text(next(chunks)), ":ping\n\n")
        finally:
            response.close()

        self.assertEqual(get_hub().subscriber_count(meeting_channel(meeting["id"])), 0)
        self.assertEqual(self.client.get("/api/meetings/999/stream", headers=self.headers).status_code, 404)

    def test_reminders_sent_once_within_window(self) -> None:
        self._create_meeting(title="Yakında", start_at=_in_minutes(10), reminder_minutes_before=15, attendee_emails=["a@firma.com"])
        self._create_meeting(title="Sonra", start_at=_in_minutes(50), reminder_minutes_before=15, attendee_emails=["b@firma.com"])
        self._create_meeting(title="Hatırlatmasız", start_at=_in_minutes(5), attendee_emails=["c@firma.com"])

        first = self.client.post("/api/jobs/meetings/remind", headers=self.headers)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.get_json(), {"ok": True, "sent": 1, "errors": 0})
        reminders = self.email_log("meeting_reminder")
        self.assertEqual([row["to_address"] for row in reminders], ["a@firma.com"])
        self.assertTrue(self.outbox_to("a@firma.com")[-1].subject.startswith("Toplantı Hatırlatması"))

        second = self.client.post("/api/jobs/meetings/remind", headers=self.headers)
        self.assertEqual(second.get_json()["sent"], 0)


if __name__ == "__main__":
    unittest.main()
