from __future__ import annotations

import unittest
import uuid
from typing import Any, Dict, List

from satinalma import create_app
from satinalma.config import Config
from satinalma.core import reset_event_bus_for_tests
from satinalma.db import close_db, get_db
from satinalma.mail import get_memory_outbox, reset_memory_outbox_for_tests
from satinalma.observability import reset_metrics_for_tests
from satinalma.realtime import reset_hub_for_tests
from satinalma.security import reset_rate_limiter_for_tests
from tests.helpers.temp_db import TempDbSandbox


def reset_process_state() -> None:
    reset_event_bus_for_tests()
    reset_hub_for_tests()
    reset_memory_outbox_for_tests()
    reset_metrics_for_tests()
    reset_rate_limiter_for_tests()


class ApiTestCase(unittest.TestCase):
    tenant_id = "tenant-test"
    config_overrides: Dict[str, Any] = {}

    def setUp(self) -> None:
        reset_process_state()
        self._temp_db = TempDbSandbox(prefix=f"satinalma_{type(self).__name__.lower()}")
        self.app = create_app(self._temp_db.make_config(Config, **self.config_overrides))
        self.client = self.app.test_client()
        self.headers = {"X-Tenant-Id": self.tenant_id}

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        reset_process_state()
        self._temp_db.cleanup()

    # -- helpers -----------------------------------------------------------

    def user_headers(self, user_id: int, tenant_id: str | None = None) -> Dict[str, str]:
        return {"X-Tenant-Id": tenant_id or self.tenant_id, "X-User-Id": str(user_id)}

    def query(self, sql: str, params: tuple = ()) -> List[dict]:
        with self.app.app_context():
            rows = get_db().execute(sql, params).fetchall()
            return [dict(row) for row in rows]

    def execute(self, sql: str, params: tuple = ()) -> None:
        with self.app.app_context():
            db = get_db()
            db.execute(sql, params)
            db.commit()

    def seed_user(
        self,
        email: str | None = None,
        *,
        role: str = "user",
        tenant_id: str | None = None,
        display_name: str | None = None,
    ) -> int:
        with self.app.app_context():
            db = get_db()
            user_id = db.insert(
                """
                INSERT INTO users (email, display_name, role, tenant_id)
                VALUES (?, ?, ?, ?)
                RETURNING id
                """,
                (
                    email or f"user-{uuid.uuid4().hex[:8]}@firma.com",
                    display_name,
                    role,
                    tenant_id or self.tenant_id,
                ),
            )
            db.commit()
            return user_id

    def outbox(self):
        return get_memory_outbox().messages()

    def outbox_to(self, address: str):
        return [message for message in self.outbox() if message.to == address]

    def email_log(self, category: str) -> List[dict]:
        return self.query("SELECT * FROM email_log WHERE category = ? ORDER BY id", (category,))

    def create_supplier(self, **overrides) -> dict:
        payload = {"name": f"Tedarikçi {uuid.uuid4().hex[:6]}", "email": "satis@tedarikci.com"}
        payload.update(overrides)
        response = self.client.post("/api/suppliers", json=payload, headers=self.headers)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()

    def create_category(self, name: str) -> int:
        response = self.client.post("/api/categories", json={"name": name}, headers=self.headers)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()["id"]

    def create_request(self, headers: Dict[str, str] | None = None, **overrides) -> dict:
        payload = {
            "barcode": f"TLP-{uuid.uuid4().hex[:6].upper()}",
            "subject": "Ofis malzemeleri",
            "budget": 15000,
            "unit_name": "Bilgi İşlem",
            "items": [
                {"name": "Toner", "quantity": 4, "unit": "adet", "unit_price": 900},
                {"name": "A4 Kağıt", "quantity": 10, "unit": "koli", "unit_price": 250},
            ],
        }
        payload.update(overrides)
        response = self.client.post("/api/requests", json=payload, headers=headers or self.headers)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()

    def create_order(self, headers: Dict[str, str] | None = None, **overrides) -> dict:
        payload = {
            "barcode": f"ORD-{uuid.uuid4().hex[:6].upper()}",
            "items": [
                {"name": "Vida", "quantity": 10, "unit_price": 2.5},
                {"name": "Somun", "quantity": 5, "unit_price": 1, "extra_costs": 3},
            ],
        }
        payload.update(overrides)
        response = self.client.post("/api/orders", json=payload, headers=headers or self.headers)
        self.assertEqual(response.status_code, 201, response.get_json())
        order = response.get_json()
        detail = self.client.get(f"/api/orders/{order['id']}", headers=self.headers)
        self.assertEqual(detail.status_code, 200)
        return detail.get_json()
