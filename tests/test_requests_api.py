import unittest

from satinalma.core import RequestCreated, get_event_bus
from satinalma.ui_strings import error_message
from tests.helpers.api_case import ApiTestCase


class RequestsApiTest(ApiTestCase):
    def test_create_request_persists_items_and_status_event(self) -> None:
        owner_id = self.seed_user("talep.sahibi@firma.com")
        created = self.create_request(headers=self.user_headers(owner_id), unit_email="birim@firma.com")

        self.assertEqual(created["status"], "pending")
        self.assertEqual(created["items_created"], 2)

        detail = self.client.get(f"/api/requests/{created['id']}", headers=self.headers)
        self.assertEqual(detail.status_code, 200)
        payload = detail.get_json()
        self.assertEqual(payload["barcode"], created["barcode"])
        self.assertEqual(payload["owner_user_id"], owner_id)
        self.assertEqual(payload["status_label"], "Beklemede")
        self.assertEqual([item["name"] for item in payload["items"]], ["Toner", "A4 Kağıt"])

        events = self.query(
            "SELECT * FROM status_events WHERE entity = 'request' AND entity_id = ?",
            (created["id"],),
        )
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["to_status"], "pending")
        self.assertEqual(events[0]["reason"], "request_created")

    def test_create_request_emails_owner_and_unit(self) -> None:
        owner_id = self.seed_user("talep.sahibi@firma.com")
        created = self.create_request(headers=self.user_headers(owner_id), unit_email="birim@firma.com")

        subject = f"Yeni Talep: {created['barcode']}"
        self.assertEqual([m.subject for m in self.outbox_to("birim@firma.com")], [subject])
        self.assertIn(subject, [m.subject for m in self.outbox_to("talep.sahibi@firma.com")])
        self.assertEqual(len(self.email_log("request_create")), 2)

        notifications = self.query("SELECT * FROM notifications WHERE user_id = ?", (owner_id,))
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0]["type"], "request")

    def test_create_request_publishes_event(self) -> None:
        received = []
        get_event_bus().subscribe(RequestCreated, received.append)

        created = self.create_request()

        self.assertEqual(len(received), 1)
        self.assertEqual(received[0].request_id, created["id"])
        self.assertEqual(received[0].tenant_id, self.tenant_id)

    def test_create_request_requires_barcode_subject_budget(self) -> None:
        response = self.client.post("/api/requests", json={"subject": "Eksik"}, headers=self.headers)
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "missing_fields")
        self.assertEqual(payload["details"], ["barcode", "budget"])
        self.assertEqual(payload["message"], error_message("missing_fields"))
        self.assertTrue(payload["request_id"])

    def test_create_request_rejects_invalid_unit_email(self) -> None:
        response = self.client.post(
            "/api/requests",
            json={"barcode": "TLP-1", "subject": "Kalem", "budget": 10, "unit_email": "birim-at-firma"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "invalid_unitEmail")

    def test_duplicate_barcode_conflicts(self) -> None:
        self.create_request(barcode="TLP-DUP")
        response = self.client.post(
            "/api/requests",
            json={"barcode": "TLP-DUP", "subject": "Tekrar", "budget": 5},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "duplicate_barcode")

    def test_items_without_name_are_skipped_and_quantity_defaults(self) -> None:
        created = self.create_request(items=[{"name": ""}, {"name": "Zımba", "quantity": 0}, "bozuk"])
        self.assertEqual(created["items_created"], 1)

        detail = self.client.get(f"/api/requests/{created['id']}", headers=self.headers).get_json()
        self.assertEqual(detail["items"][0]["quantity"], 1.0)
        self.assertEqual(detail["items"][0]["unit"], "adet")

    def test_list_filters_by_status_and_search(self) -> None:
        first = self.create_request(subject="Toner alımı")
        self.create_request(subject="Temizlik malzemesi")
        self.client.patch(f"/api/requests/{first['id']}/status", json={"status": "approved"}, headers=self.headers)

        approved = self.client.get("/api/requests?status=approved", headers=self.headers).get_json()
        self.assertEqual([row["id"] for row in approved["items"]], [first["id"]])

        searched = self.client.get("/api/requests?q=temizlik", headers=self.headers).get_json()
        self.assertEqual(searched["total"], 1)
        self.assertEqual(searched["items"][0]["subject"], "Temizlik malzemesi")

        paged = self.client.get("/api/requests?page_size=1&page=2", headers=self.headers).get_json()
        self.assertEqual(paged["total"], 2)
        self.assertEqual(paged["page"], 2)
        self.assertEqual(len(paged["items"]), 1)

    def test_list_rejects_invalid_date_filter(self) -> None:
        response = self.client.get("/api/requests?date_from=dun", headers=self.headers)
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "invalid_date")
        self.assertEqual(payload["details"], ["date_from"])

    def test_update_status_records_transition_and_notifies(self) -> None:
        owner_id = self.seed_user("sahip@firma.com")
        responsible_id = self.seed_user("sorumlu@firma.com")
        created = self.create_request(headers=self.user_headers(owner_id), responsible_user_id=responsible_id)

        response = self.client.patch(
            f"/api/requests/{created['id']}/status",
            json={"status": "approved", "reason": "bütçe uygun"},
            headers=self.user_headers(owner_id),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.get_json(),
            {"ok": True, "id": created["id"], "status": "approved", "previous_status": "pending"},
        )

        events = self.query(
            "SELECT from_status, to_status, reason FROM status_events WHERE entity_id = ? ORDER BY id",
            (created["id"],),
        )
        self.assertEqual(events[-1], {"from_status": "pending", "to_status": "approved", "reason": "bütçe uygun"})

        notified = {row["user_id"] for row in self.query("SELECT user_id FROM notifications WHERE title = ?", ("Talep durumu güncellendi",))}
        self.assertEqual(notified, {owner_id, responsible_id})
        self.assertEqual(len(self.email_log("request_status")), 2)

    def test_update_status_rejects_unknown_status(self) -> None:
        created = self.create_request()
        response = self.client.patch(f"/api/requests/{created['id']}/status", json={"status": "bilinmiyor"}, headers=self.headers)
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "invalid_status")
        self.assertIn("approved", payload["details"]["allowed"])

    def test_missing_request_is_404(self) -> None:
        response = self.client.get("/api/requests/999", headers=self.headers)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "request_not_found")

        response = self.client.patch("/api/requests/999/status", json={"status": "approved"}, headers=self.headers)
        self.assertEqual(response.status_code, 404)

    def test_requests_are_isolated_per_tenant(self) -> None:
        created = self.create_request()
        other_tenant = {"X-Tenant-Id": "tenant-other"}

        self.assertEqual(self.client.get(f"/api/requests/{created['id']}", headers=other_tenant).status_code, 404)
        listing = self.client.get("/api/requests", headers=other_tenant).get_json()
        self.assertEqual(listing["total"], 0)


if __name__ == "__main__":
    unittest.main()
