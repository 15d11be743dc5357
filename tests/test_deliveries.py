import unittest

from satinalma.core import DeliveryRecorded, get_event_bus
from tests.helpers.api_case import ApiTestCase


class DeliveriesApiTest(ApiTestCase):
    def _record(self, order: dict, code: str, quantities: list, headers=None):
        items = [
            {"order_item_id": item["id"], "quantity": quantity}
            for item, quantity in zip(order["items"], quantities)
        ]
        return self.client.post(
            "/api/deliveries",
            json={"order_id": order["id"], "code": code, "items": items, "received_by": "Depo"},
            headers=headers or self.headers,
        )

    def test_partial_then_full_delivery_moves_order_status(self) -> None:
        received = []
        get_event_bus().subscribe(DeliveryRecorded, received.append)
        order = self.create_order()

        first = self._record(order, "IRS-1", [4, 5])
        self.assertEqual(first.status_code, 201)
        payload = first.get_json()
        self.assertEqual(payload["code"], "IRS-1")
        self.assertEqual(payload["order_status"], "partially_delivered")
        remaining = {row["order_item_id"]: row["remaining"] for row in payload["reconciliation"]["items"]}
        self.assertEqual(remaining, {order["items"][0]["id"]: 6.0, order["items"][1]["id"]: 0.0})

        second = self._record(order, "IRS-2", [6])
        self.assertEqual(second.get_json()["order_status"], "delivered")
        self.assertTrue(second.get_json()["reconciliation"]["all_delivered"])

        detail = self.client.get(f"/api/orders/{order['id']}", headers=self.headers).get_json()
        self.assertEqual(detail["status"], "delivered")
        self.assertEqual(len(detail["deliveries"]), 2)
        self.assertEqual([event.all_delivered for event in received], [False, True])

        history = self.query(
            "SELECT to_status, reason FROM status_events WHERE entity = 'order' AND entity_id = ? ORDER BY id",
            (order["id"],),
        )
        self.assertEqual(
            [row["to_status"] for row in history],
            ["pending", "partially_delivered", "delivered"],
        )
        self.assertEqual(history[-1]["reason"], "delivery_recorded")

    def test_completed_order_keeps_status_after_delivery(self) -> None:
        order = self.create_order()
        self.client.patch(f"/api/orders/{order['id']}", json={"status": "completed"}, headers=self.headers)

        response = self._record(order, "IRS-LATE", [10, 5])
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["order_status"], "completed")

    def test_record_validation(self) -> None:
        order = self.create_order()

        empty = self.client.post("/api/deliveries", json={"order_id": order["id"]}, headers=self.headers)
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.get_json()["error"], "invalid_payload")

        missing_order = self.client.post(
            "/api/deliveries",
            json={"order_id": 999, "items": [{"order_item_id": 1, "quantity": 1}]},
            headers=self.headers,
        )
        self.assertEqual(missing_order.status_code, 404)
        self.assertEqual(missing_order.get_json()["error"], "order_not_found")

        foreign_items = self.client.post(
            "/api/deliveries",
            json={"order_id": order["id"], "items": [{"order_item_id": 999, "quantity": 1}]},
            headers=self.headers,
        )
        self.assertEqual(foreign_items.status_code, 400)
        self.assertEqual(foreign_items.get_json()["error"], "no_valid_items")

        self.assertEqual(self._record(order, "IRS-SAME", [1]).status_code, 201)
        duplicate = self._record(order, "IRS-SAME", [1])
        self.assertEqual(duplicate.status_code, 400)
        self.assertEqual(duplicate.get_json()["error"], "duplicate_code")

    def test_unknown_action_is_rejected(self) -> None:
        response = self.client.post("/api/deliveries", json={"action": "sil"}, headers=self.headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "invalid_payload")

    def test_list_deliveries_by_order(self) -> None:
        first = self.create_order()
        second = self.create_order()
        self._record(first, "IRS-A", [1])
        self._record(second, "IRS-B", [1])

        listing = self.client.get(f"/api/deliveries?order_id={first['id']}", headers=self.headers).get_json()
        self.assertEqual(listing["total"], 1)
        self.assertEqual(listing["items"][0]["code"], "IRS-A")
        self.assertEqual(listing["items"][0]["items"][0]["approved_quantity"], 1.0)

    def test_reject_delivery_updates_reconciliation(self) -> None:
        order = self.create_order()
        delivery = self._record(order, "IRS-R", [4]).get_json()

        rejected = self.client.patch(f"/api/deliveries/{delivery['id']}", json={"status": "rejected"}, headers=self.headers)
        self.assertEqual(rejected.status_code, 200)
        self.assertEqual(rejected.get_json()["status"], "rejected")

        match = self.client.get(f"/api/orders/{order['id']}/match", headers=self.headers).get_json()
        self.assertEqual(match["analysis"][0]["delivered"], 0.0)

        invalid = self.client.patch(f"/api/deliveries/{delivery['id']}", json={"status": "bekliyor"}, headers=self.headers)
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.get_json()["error"], "invalid_status")

        missing = self.client.patch("/api/deliveries/999", json={"status": "approved"}, headers=self.headers)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()["error"], "delivery_not_found")

    def test_delivery_token_and_portal(self) -> None:
        order = self.create_order()

        token_response = self.client.post(
            "/api/deliveries",
            json={"action": "create-token", "order_id": order["id"]},
            headers=self.headers,
        )
        self.assertEqual(token_response.status_code, 200)
        token_payload = token_response.get_json()
        token = token_payload["token"]
        self.assertRegex(token, r"^DLV-[0-9A-F]{8}$")
        self.assertTrue(token_payload["url"].endswith(f"/portal/delivery/{token}"))

        portal = self.client.get(f"/api/portal/delivery/{token}")
        self.assertEqual(portal.status_code, 200)
        self.assertEqual(portal.get_json()["order"]["barcode"], order["barcode"])
        self.assertFalse(portal.get_json()["reconciliation"]["any_delivered"])

        recorded = self.client.post(
            f"/api/portal/delivery/{token}",
            json={"code": "IRS-PORTAL", "items": [{"order_item_id": order["items"][1]["id"], "quantity": 5}]},
        )
        self.assertEqual(recorded.status_code, 201)
        self.assertEqual(recorded.get_json()["order_status"], "partially_delivered")

        self.assertEqual(self.client.get("/api/portal/delivery/DLV-YOKYOKYO").status_code, 404)

    def test_expired_delivery_token(self) -> None:
        order = self.create_order()
        token = self.client.post(
            "/api/deliveries",
            json={"action": "create-token", "order_id": order["id"]},
            headers=self.headers,
        ).get_json()["token"]
        self.execute("UPDATE orders SET delivery_token_expiry = '2000-01-01 00:00:00' WHERE id = ?", (order["id"],))

        response = self.client.get(f"/api/portal/delivery/{token}")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "invalid_token")

    def test_send_delivery_link(self) -> None:
        order = self.create_order()
        token = self.client.post(
            "/api/deliveries",
            json={"action": "create-token", "order_id": order["id"]},
            headers=self.headers,
        ).get_json()["token"]

        sent = self.client.post(
            "/api/deliveries",
            json={"action": "send-email", "token": token, "email": "depo@tedarikci.com"},
            headers=self.headers,
        )
        self.assertEqual(sent.status_code, 200)
        self.assertTrue(sent.get_json()["ok"])
        messages = self.outbox_to("depo@tedarikci.com")
        self.assertEqual(len(messages), 1)
        self.assertIn(f"/portal/delivery/{token}", messages[0].html)

        invalid_email = self.client.post(
            "/api/deliveries",
            json={"action": "send-email", "token": token, "email": "depo"},
            headers=self.headers,
        )
        self.assertEqual(invalid_email.get_json()["error"], "invalid_email")

        other_tenant = self.client.post(
            "/api/deliveries",
            json={"action": "send-email", "token": token, "email": "depo@tedarikci.com"},
            headers={"X-Tenant-Id": "tenant-other"},
        )
        self.assertEqual(other_tenant.status_code, 404)
        self.assertEqual(other_tenant.get_json()["error"], "invalid_token")

        missing = self.client.post("/api/deliveries", json={"action": "send-email"}, headers=self.headers)
        self.assertEqual(missing.get_json()["details"], ["token", "email"])


if __name__ == "__main__":
    unittest.main()
