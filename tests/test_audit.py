import os
import sqlite3
import unittest
from unittest.mock import patch

from werkzeug.security import generate_password_hash

from satinalma.application.audit_service import client_ip, compute_changes, record_audit
from satinalma.db import get_db
from tests.helpers.api_case import ApiTestCase


class ComputeChangesTest(unittest.TestCase):
    def test_only_changed_fields_are_kept(self) -> None:
        old = {"id": 1, "title": "Eski", "value": 10, "updated_at": "dün", "password_hash": "x"}
        new = {"id": 1, "title": "Yeni", "value": 10, "updated_at": "bugün", "password_hash": "y"}
        self.assertEqual(compute_changes(old, new), {"old": {"title": "Eski"}, "new": {"title": "Yeni"}})

    def test_no_difference_returns_none(self) -> None:
        self.assertIsNone(compute_changes({"title": "Aynı"}, {"title": "Aynı"}))
        self.assertIsNone(compute_changes(None, {}))

    def test_new_keys_count_as_changes(self) -> None:
        self.assertEqual(compute_changes(None, {"status": "active"}), {"old": {"status": None}, "new": {"status": "active"}})


class AuditApiTest(ApiTestCase):
    def test_client_ip_prefers_forwarded_header(self) -> None:
        with self.app.test_request_context(headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"}):
            self.assertEqual(client_ip(), "203.0.113.5")
        with self.app.test_request_context(headers={"X-Real-IP": "198.51.100.7"}):
            self.assertEqual(client_ip(), "198.51.100.7")

    def test_created_orders_are_listed_newest_first(self) -> None:
        user_id = self.seed_user("satinalma@firma.com", display_name="Satınalma Uzmanı")
        first = self.create_order(headers=self.user_headers(user_id), barcode="ORD-A1")
        second = self.create_order(headers=self.user_headers(user_id), barcode="ORD-A2")

        response = self.client.get("/api/audit?entity_type=Order&action=create&limit=1", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["pagination"], {"page": 1, "limit": 1, "total": 2, "total_pages": 2})
        item = payload["items"][0]
        self.assertEqual(item["entity_id"], str(second["id"]))
        self.assertEqual(item["action_label"], "Oluşturma")
        self.assertEqual(item["entity_label"], "Sipariş")
        self.assertEqual(item["user_name"], "Satınalma Uzmanı")
        self.assertEqual(item["new_data"]["barcode"], "ORD-A2")
        self.assertIsNone(item["old_data"])

        by_entity = self.client.get(f"/api/audit?entity_id={first['id']}&entity_type=Order", headers=self.headers)
        self.assertEqual([row["new_data"]["barcode"] for row in by_entity.get_json()["items"]], ["ORD-A1"])

        by_user = self.client.get(f"/api/audit?user_id={user_id + 100}", headers=self.headers)
        self.assertEqual(by_user.get_json()["items"], [])

    def test_other_tenants_rows_are_hidden(self) -> None:
        self.create_order()
        other = self.client.get("/api/audit", headers={"X-Tenant-Id": "tenant-baska"})
        self.assertEqual(other.get_json()["pagination"]["total"], 0)

    def test_only_admin_reads_the_log(self) -> None:
        with self.client.session_transaction() as sess:
            sess["user_role"] = "purchasing_manager"
        response = self.client.get("/api/audit", headers=self.headers)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"], "forbidden")

    def test_write_failure_is_logged_not_raised(self) -> None:
        with self.app.app_context():
            with patch(
                "satinalma.application.audit_service.AuditRepository.add",
                side_effect=sqlite3.OperationalError("database is locked"),
            ):
                with self.assertLogs("satinalma.audit", level="ERROR"):
                    result = record_audit(get_db(), tenant_id=self.tenant_id, action="CREATE", entity_type="System")
        self.assertIsNone(result)
        self.assertEqual(self.query("SELECT id FROM audit_logs"), [])


class AuditSessionTest(ApiTestCase):
    config_overrides = {
        "TESTING": False,
        "AUTH_ENABLED": True,
        "DB_AUTO_INIT": True,
        "APP_USERS": "yonetici@firma.com:gizli123:tenant-test:Yönetici:admin",
    }

    def setUp(self) -> None:
        self._prev_env = os.environ.get("FLASK_ENV")
        os.environ["FLASK_ENV"] = "development"
        super().setUp()

    def tearDown(self) -> None:
        super().tearDown()
        if self._prev_env is None:
            os.environ.pop("FLASK_ENV", None)
        else:
            os.environ["FLASK_ENV"] = self._prev_env

    def test_login_and_logout_are_recorded_with_client_address(self) -> None:
        self.execute(
            "INSERT INTO users (email, password_hash, role, tenant_id) VALUES (?, ?, 'user', ?)",
            ("personel@firma.com", generate_password_hash("parola"), self.tenant_id),
        )
        user_id = self.query("SELECT id FROM users WHERE email = 'personel@firma.com'")[0]["id"]
        headers = {"X-Forwarded-For": "203.0.113.9", "User-Agent": "satinalma-test/1.0"}

        login = self.client.post(
            "/api/auth/login", json={"email": "personel@firma.com", "password": "parola"}, headers=headers
        )
        self.assertEqual(login.status_code, 200)
        self.assertEqual(self.client.get("/api/audit").status_code, 403)
        self.client.post("/api/auth/logout", headers=headers)

        rows = self.query("SELECT * FROM audit_logs WHERE entity_type = 'User' ORDER BY id")
        self.assertEqual([row["action"] for row in rows], ["LOGIN", "LOGOUT"])
        self.assertEqual({row["user_id"] for row in rows}, {user_id})
        self.assertEqual(rows[0]["ip_address"], "203.0.113.9")
        self.assertEqual(rows[0]["user_agent"], "satinalma-test/1.0")
        self.assertEqual(rows[0]["tenant_id"], self.tenant_id)

    def test_failed_login_is_not_recorded(self) -> None:
        response = self.client.post("/api/auth/login", json={"email": "yok@firma.com", "password": "x"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.query("SELECT id FROM audit_logs"), [])


if __name__ == "__main__":
    unittest.main()
