import unittest
from datetime import date

from satinalma.application.report_service import previous_month_start, trend_percent
from tests.helpers.api_case import ApiTestCase


class ReportHelpersTest(unittest.TestCase):
    def test_trend_percent(self) -> None:
        self.assertEqual(trend_percent(5, 0), 100.0)
        self.assertEqual(trend_percent(0, 0), 0.0)
        self.assertEqual(trend_percent(3, 4), -25.0)

    def test_previous_month_start_crosses_year(self) -> None:
        self.assertEqual(previous_month_start(date(2026, 1, 15)), date(2025, 12, 1))


class ReportsApiTest(ApiTestCase):
    def test_dashboard_counts(self) -> None:
        self.create_request()
        self.create_order()
        self.create_supplier()

        response = self.client.get("/api/reports/dashboard", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["requests"]["total"], 1)
        self.assertEqual(payload["requests"]["this_month"], 1)
        self.assertEqual(payload["requests"]["trend"], 100.0)
        self.assertEqual(payload["orders"]["total"], 1)
        self.assertEqual(payload["suppliers"]["total"], 1)
        self.assertEqual(len(payload["recent_orders"]), 1)

        other = self.client.get("/api/reports/dashboard", headers={"X-Tenant-Id": "tenant-other"}).get_json()
        self.assertEqual(other["requests"]["total"], 0)

    def test_spend_by_supplier(self) -> None:
        supplier = self.create_supplier(name="Demir AŞ")
        self.create_order(supplier_id=supplier["id"])
        self.create_order(supplier_id=supplier["id"])
        self.create_order()

        payload = self.client.get("/api/reports/spend-by-supplier", headers=self.headers).get_json()

        self.assertEqual(payload["total_spend"], 99.0)
        first = payload["items"][0]
        self.assertEqual((first["supplier_name"], first["order_count"], first["total_spend"]), ("Demir AŞ", 2, 66.0))

        window = self.client.get(
            "/api/reports/spend-by-supplier?date_from=2000-01-01&date_to=2000-12-31",
            headers=self.headers,
        ).get_json()
        self.assertEqual((window["items"], window["total_spend"]), ([], 0))

    def test_spend_by_supplier_rejects_bad_dates(self) -> None:
        response = self.client.get("/api/reports/spend-by-supplier?date_from=bozuk", headers=self.headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "invalid_date")


if __name__ == "__main__":
    unittest.main()
