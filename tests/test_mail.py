import unittest
from datetime import datetime

from satinalma.db import get_db
from satinalma.mail import Mailer, get_memory_outbox, render_email_template, unique_recipients
from satinalma.mail.mailer import DEFERRED_OUTSIDE_BUSINESS_HOURS, MISSING_PAYLOAD, SMTP_NOT_CONFIGURED
from tests.helpers.api_case import ApiTestCase


SATURDAY_NOON = datetime(2026, 10, 17, 12, 0)
MONDAY_TEN = datetime(2026, 10, 19, 10, 0)
MONDAY_EVENING = datetime(2026, 10, 19, 19, 30)


class UniqueRecipientsTest(unittest.TestCase):
    def test_case_insensitive_and_blank_filtered(self) -> None:
        self.assertEqual(
            unique_recipients([" a@firma.com", None, "A@FIRMA.COM", "", "b@firma.com"]),
            ["a@firma.com", "b@firma.com"],
        )


class MailerRetryTest(ApiTestCase):
    config_overrides = {"MAIL_RETRY_BACKOFF_MS": 100}

    def test_transient_failures_are_retried_with_backoff(self) -> None:
        sleeps = []
        mailer = Mailer(sleep=sleeps.append)
        get_memory_outbox().fail_next(2)

        with self.app.app_context():
            result = mailer.dispatch_email(get_db(), to="a@firma.com", subject="Deneme", html="<p>x</p>", category="test")

        self.assertTrue(result.ok)
        self.assertEqual(result.attempts, 3)
        self.assertEqual(sleeps, [0.1, 0.2])
        row = self.email_log("test")[0]
        self.assertEqual((row["status"], row["attempts"], row["smtp_key"]), ("sent", 3, "config"))
        self.assertIsNone(row["payload_html"])
        self.assertIsNotNone(row["sent_at"])

    def test_exhausted_attempts_keep_payload_for_inspection(self) -> None:
        mailer = Mailer(sleep=lambda _seconds: None)
        get_memory_outbox().fail_next(5)

        with self.app.app_context():
            result = mailer.dispatch_email(
                get_db(),
                to="a@firma.com",
                subject="Deneme",
                html="<p>x</p>",
                category="test",
                max_attempts=2,
            )

        self.assertFalse(result.ok)
        self.assertEqual(result.attempts, 2)
        self.assertIn("simulated failure", result.error)
        row = self.email_log("test")[0]
        self.assertEqual((row["status"], row["payload_html"]), ("failed", "<p>x</p>"))
        self.assertEqual(self.outbox(), [])


class BusinessHoursTest(ApiTestCase):
    config_overrides = {"MAIL_BUSINESS_HOURS_ONLY": True, "MAIL_BUSINESS_START_HOUR": 9, "MAIL_BUSINESS_END_HOUR": 18}

    def _mailer(self, now: datetime) -> Mailer:
        return Mailer(clock=lambda: now, sleep=lambda _seconds: None)

    def test_business_hours_window(self) -> None:
        with self.app.app_context():
            self.assertTrue(self._mailer(SATURDAY_NOON).outside_business_hours())
            self.assertTrue(self._mailer(MONDAY_EVENING).outside_business_hours())
            self.assertFalse(self._mailer(MONDAY_TEN).outside_business_hours())

    def test_deferred_queue_drains_regardless_of_the_clock(self) -> None:
        with self.app.app_context():
            db = get_db()
            deferred = self._mailer(SATURDAY_NOON).dispatch_email(
                db, to="a@firma.com", subject="Hafta sonu", html="<p>bekle</p>", category="test"
            )
            self.assertEqual((deferred.ok, deferred.attempts, deferred.error), (False, 0, DEFERRED_OUTSIDE_BUSINESS_HOURS))
            self.assertEqual(self.outbox(), [])

            summary = self._mailer(SATURDAY_NOON).process_deferred(db)

        self.assertEqual(summary, {"ok": True, "processed": 1, "sent": 1, "failed": 0, "skipped": 0})
        self.assertEqual([message.subject for message in self.outbox()], ["Hafta sonu"])
        row = self.email_log("test")[0]
        self.assertEqual((row["status"], row["attempts"]), ("sent", 1))


class SmtpNotConfiguredTest(ApiTestCase):
    config_overrides = {"MAIL_MODE": "smtp", "MAIL_SMTP_HOST": None}

    def test_deferred_until_a_transport_exists(self) -> None:
        with self.app.app_context():
            db = get_db()
            result = Mailer().dispatch_email(db, to="a@firma.com", subject="Bekleyen", html="<p>x</p>", category="test")
            self.assertEqual(result.error, SMTP_NOT_CONFIGURED)
            summary = Mailer().process_deferred(db)

        self.assertEqual(summary["skipped"], 1)
        self.assertEqual(self.email_log("test")[0]["status"], "deferred")

    def test_notification_emails_do_not_fail_requests(self) -> None:
        owner_id = self.seed_user("sahip@firma.com")
        self.create_request(headers=self.user_headers(owner_id))

        deferred = self.email_log("request_create")
        self.assertTrue(deferred)
        self.assertTrue(all(row["status"] == "deferred" for row in deferred))


class DeferredQueueTest(ApiTestCase):
    def test_process_deferred_job(self) -> None:
        self.execute(
            """
            INSERT INTO email_log (to_address, subject, category, status, attempts, last_error, payload_html)
            VALUES (?, ?, 'test', 'deferred', 0, ?, ?)
            """,
            ("a@firma.com", "Sırada", SMTP_NOT_CONFIGURED, "<p>kuyruk</p>"),
        )
        self.execute(
            "INSERT INTO email_log (to_address, subject, category, status) VALUES (?, ?, 'test', 'deferred')",
            ("b@firma.com", "Eksik"),
        )

        response = self.client.post("/api/jobs/email/process-deferred", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"ok": True, "processed": 2, "sent": 1, "failed": 1, "skipped": 0})
        rows = {row["to_address"]: row for row in self.email_log("test")}
        self.assertEqual(rows["a@firma.com"]["status"], "sent")
        self.assertEqual(rows["b@firma.com"]["status"], "failed")
        self.assertEqual(rows["b@firma.com"]["last_error"], MISSING_PAYLOAD)
        self.assertEqual(self.outbox_to("a@firma.com")[0].html, "<p>kuyruk</p>")


class EmailTemplateTest(ApiTestCase):
    def test_detail_template_renders_items_and_action(self) -> None:
        with self.app.test_request_context():
            html = render_email_template(
                "detail",
                title="Sipariş",
                intro="Özet",
                fields=[{"label": "Barkod", "value": "ORD-1"}, "geçersiz"],
                items=[{"name": "Vida", "quantity": 10, "unit_price": 2.5}],
                action_url="https://satinalma.example/siparisler/1",
                action_text="Aç",
            )
        self.assertIn("ORD-1", html)
        self.assertIn("Vida", html)
        self.assertIn("https://satinalma.example/siparisler/1", html)

    def test_unknown_template_falls_back_to_generic(self) -> None:
        with self.app.test_request_context():
            html = render_email_template("yok", title="Başlık", body="<b>kalın</b>")
        self.assertIn("Başlık", html)
        self.assertIn("<b>kalın</b>", html)


class SmtpSettingsApiTest(ApiTestCase):
    payload = {
        "key": "ana",
        "host": "smtp.firma.com",
        "port": 587,
        "user": "bildirim",
        "password": "gizli",
        "from": "bildirim@firma.com",
        "is_default": True,
    }

    def test_crud_masks_password(self) -> None:
        created = self.client.post("/api/settings/smtp", json=self.payload, headers=self.headers)
        self.assertEqual(created.status_code, 201)
        setting = created.get_json()
        self.assertEqual(setting["password"], "********")
        self.assertTrue(setting["is_default"])

        listing = self.client.get("/api/settings/smtp", headers=self.headers).get_json()
        self.assertEqual([row["key"] for row in listing["items"]], ["ana"])
        self.assertEqual(listing["items"][0]["password"], "********")

        kept = self.client.put(
            f"/api/settings/smtp/{setting['id']}",
            json={"password": "********", "port": 465, "secure": "true"},
            headers=self.headers,
        )
        self.assertEqual(kept.status_code, 200)
        self.assertTrue(kept.get_json()["secure"])
        stored = self.query("SELECT password, port FROM smtp_settings WHERE id = ?", (setting["id"],))[0]
        self.assertEqual((stored["password"], stored["port"]), ("gizli", 465))

        deleted = self.client.delete(f"/api/settings/smtp/{setting['id']}", headers=self.headers)
        self.assertEqual(deleted.get_json(), {"ok": True, "id": setting["id"]})
        missing = self.client.put(f"/api/settings/smtp/{setting['id']}", json={"port": 25}, headers=self.headers)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()["error"], "smtp_setting_not_found")

    def test_validation_and_duplicates(self) -> None:
        missing = self.client.post("/api/settings/smtp", json={"key": "ana", "port": "x"}, headers=self.headers)
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.get_json()["details"], ["host", "port", "user", "from"])

        self.client.post("/api/settings/smtp", json=self.payload, headers=self.headers)
        duplicate = self.client.post("/api/settings/smtp", json=self.payload, headers=self.headers)
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.get_json()["details"], {"field": "key"})

    def test_stored_transport_is_preferred(self) -> None:
        self.client.post("/api/settings/smtp", json=self.payload, headers=self.headers)
        with self.app.app_context():
            result = Mailer().dispatch_email(get_db(), to="a@firma.com", subject="Deneme", html="<p>x</p>")

        self.assertTrue(result.ok)
        message = self.outbox()[0]
        self.assertEqual((message.smtp_key, message.from_address), ("ana", "bildirim@firma.com"))


if __name__ == "__main__":
    unittest.main()
