import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from satinalma.application.jobs import JOBS, run_job
from satinalma.db import get_db
from satinalma.errors import NotFoundError
from satinalma.scheduler import DEFAULT_SCHEDULER_JOBS, JobScheduler, _parse_jobs, _parse_job_intervals, start_job_scheduler
from tests.helpers.api_case import ApiTestCase


def _day(offset: int) -> str:
    return (datetime.now(timezone.utc).date() + timedelta(days=offset)).isoformat()


class ParseJobsTest(unittest.TestCase):
    def test_unknown_names_are_dropped(self) -> None:
        self.assertEqual(_parse_jobs("meeting_reminders, yok ,process_deferred_emails"), ["meeting_reminders", "process_deferred_emails"])
        self.assertEqual(_parse_jobs(["yok"]), list(DEFAULT_SCHEDULER_JOBS))
        self.assertEqual(_parse_jobs(None), list(DEFAULT_SCHEDULER_JOBS))

    def test_job_intervals(self) -> None:
        self.assertEqual(
            _parse_job_intervals("contract_expiry_reminders=86400, yok=5,evaluation_reminders=abc,meeting_reminders=0"),
            {"contract_expiry_reminders": 86400},
        )
        self.assertEqual(_parse_job_intervals(""), {})
        self.assertEqual(_parse_job_intervals(None), {})

    def test_registry_names(self) -> None:
        self.assertEqual(
            set(JOBS),
            {"process_deferred_emails", "contract_expiry_reminders", "evaluation_reminders", "meeting_reminders"},
        )


class JobsApiTest(ApiTestCase):
    def test_unknown_job_is_404(self) -> None:
        response = self.client.post("/api/jobs/reports/rebuild", headers=self.headers)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["details"], {"job": "reports/rebuild"})

        with self.app.app_context():
            with self.assertRaises(NotFoundError):
                run_job(get_db(), "yok")

    def test_raw_job_name_is_accepted(self) -> None:
        response = self.client.post("/api/jobs/contract_expiry_reminders", headers=self.headers)
        self.assertEqual(response.get_json(), {"ok": True, "count": 0})

    def test_evaluation_reminders_for_stale_completed_orders(self) -> None:
        owner_id = self.seed_user("sahip@firma.com")
        request_row = self.create_request(headers=self.user_headers(owner_id))
        order = self.create_order(request_id=request_row["id"])
        self.client.patch(f"/api/orders/{order['id']}", json={"status": "completed"}, headers=self.headers)
        self.execute("UPDATE orders SET updated_at = '2000-01-01 00:00:00' WHERE id = ?", (order["id"],))
        before = len(self.email_log("evaluation_request"))

        response = self.client.post("/api/jobs/evaluations/remind", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        summary = response.get_json()
        self.assertEqual((summary["ok"], summary["errors"]), (True, 0))
        self.assertEqual(summary["sent"], 1)
        self.assertGreater(len(self.email_log("evaluation_request")), before)

    def test_jobs_are_scoped_to_the_calling_tenant(self) -> None:
        self.client.post(
            "/api/meetings",
            json={"title": "Diğer", "start_at": "2099-01-01T10:00:00Z"},
            headers={"X-Tenant-Id": "tenant-other"},
        )
        with patch("satinalma.application.jobs.MeetingService.send_reminders", return_value={"ok": True, "sent": 0, "errors": 0}) as send:
            self.client.post("/api/jobs/meetings/remind", headers=self.headers)
            with self.app.app_context():
                run_job(get_db(), "meeting_reminders")

        tenants = [call.kwargs["tenant_id"] for call in send.call_args_list]
        self.assertEqual(tenants, ["tenant-test", "tenant-other"])


class JobSchedulerTest(ApiTestCase):
    config_overrides = {
        "JOB_SCHEDULER_JOBS": "meeting_reminders,contract_expiry_reminders",
        "JOB_SCHEDULER_MIN_BACKOFF_SECONDS": 30,
        "JOB_SCHEDULER_MAX_BACKOFF_SECONDS": 100,
        "JOB_SCHEDULER_JOB_INTERVALS": "",
    }

    def test_not_started_while_testing(self) -> None:
        self.assertIsNone(start_job_scheduler(self.app))
        self.assertNotIn("job_scheduler", self.app.extensions)

    def test_failing_job_backs_off_exponentially(self) -> None:
        scheduler = JobScheduler(self.app)
        self.assertEqual(scheduler.jobs, ["meeting_reminders", "contract_expiry_reminders"])
        calls = []

        def fake_run_job(db, name, tenant_id=None):
            calls.append(name)
            if name == "meeting_reminders":
                raise RuntimeError("smtp kapalı")
            return {"ok": True}

        with patch("satinalma.scheduler.run_job", side_effect=fake_run_job), patch(
            "satinalma.scheduler.time.monotonic", return_value=1000.0
        ):
            scheduler.run_once()
            self.assertEqual(scheduler._next_run_at["meeting_reminders"], 1030.0)
            scheduler.run_once()

        self.assertEqual(calls, ["meeting_reminders", "contract_expiry_reminders", "contract_expiry_reminders"])
        self.assertNotIn("contract_expiry_reminders", scheduler._next_run_at)

        with patch("satinalma.scheduler.run_job", side_effect=fake_run_job), patch(
            "satinalma.scheduler.time.monotonic", return_value=1031.0
        ):
            scheduler.run_once()
            self.assertEqual(scheduler._failure_counts["meeting_reminders"], 2)
            self.assertEqual(scheduler._next_run_at["meeting_reminders"], 1091.0)

        with patch("satinalma.scheduler.time.monotonic", return_value=2000.0):
            scheduler._register_failure("meeting_reminders")
        # 30 * 2**2 is capped at the configured maximum
        self.assertEqual(scheduler._next_run_at["meeting_reminders"], 2100.0)


class ScheduledReminderTest(ApiTestCase):
    config_overrides = {"JOB_SCHEDULER_JOBS": "contract_expiry_reminders,evaluation_reminders"}

    def _seed_due_reminders(self) -> int:
        responsible_id = self.seed_user("sorumlu@firma.com")
        created = self.client.post(
            "/api/contracts",
            json={
                "title": "Bitiyor",
                "type": "hizmet",
                "parties": ["Firma A", "Firma B"],
                "start_date": _day(-30),
                "end_date": _day(10),
                "status": "active",
                "responsible_user_id": responsible_id,
            },
            headers=self.headers,
        )
        self.assertEqual(created.status_code, 201, created.get_json())
        owner_id = self.seed_user("sahip@firma.com")
        request_row = self.create_request(headers=self.user_headers(owner_id))
        order = self.create_order(request_id=request_row["id"])
        self.client.patch(f"/api/orders/{order['id']}", json={"status": "completed"}, headers=self.headers)
        self.execute("UPDATE orders SET updated_at = '2000-01-01 00:00:00' WHERE id = ?", (order["id"],))
        return order["id"]

    def _contract_notifications(self) -> int:
        return len(self.query("SELECT id FROM notifications WHERE type = 'contract'"))

    def test_repeated_ticks_send_each_reminder_once(self) -> None:
        self._seed_due_reminders()
        scheduler = JobScheduler(self.app)
        self.assertEqual(scheduler.job_intervals["contract_expiry_reminders"], 86400)

        scheduler.run_once()
        evaluation_emails = len(self.email_log("evaluation_request"))
        scheduler.run_once()
        scheduler.run_once()

        self.assertEqual(self._contract_notifications(), 1)
        self.assertEqual(len(self.email_log("evaluation_request")), evaluation_emails)

    def test_markers_hold_without_a_job_interval(self) -> None:
        order_id = self._seed_due_reminders()
        scheduler = JobScheduler(self.app)
        scheduler.job_intervals = {}

        scheduler.run_once()
        evaluation_emails = len(self.email_log("evaluation_request"))
        scheduler.run_once()
        scheduler.run_once()

        self.assertEqual(self._contract_notifications(), 1)
        self.assertEqual(len(self.email_log("evaluation_request")), evaluation_emails)
        marker = self.query("SELECT evaluation_reminder_sent_at FROM orders WHERE id = ?", (order_id,))[0]
        self.assertIsNotNone(marker["evaluation_reminder_sent_at"])

        # an old reminder makes the order due again
        self.execute("UPDATE orders SET evaluation_reminder_sent_at = '2000-01-02 00:00:00' WHERE id = ?", (order_id,))
        scheduler.run_once()
        self.assertGreater(len(self.email_log("evaluation_request")), evaluation_emails)


if __name__ == "__main__":
    unittest.main()
