import unittest

from tests.helpers.api_case import ApiTestCase


class SuppliersApiTest(ApiTestCase):
    def test_create_supplier_normalizes_email_and_defaults_to_approved(self) -> None:
        supplier = self.create_supplier(name="Anadolu Kırtasiye", email="Satis@Anadolu.com", tax_id="1234567890")

        self.assertEqual(supplier["email"], "satis@anadolu.com")
        self.assertEqual(supplier["registration_status"], "approved")
        self.assertEqual(supplier["active"], 1)
        self.assertEqual(supplier["tenant_id"], self.tenant_id)

    def test_create_supplier_requires_name(self) -> None:
        response = self.client.post("/api/suppliers", json={"email": "a@b.com"}, headers=self.headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "name_required")

    def test_create_supplier_collects_contact_errors(self) -> None:
        response = self.client.post(
            "/api/suppliers",
            json={"name": "Hatalı", "email": "adres", "phone": "12-34", "tax_id": "123", "category_id": 999},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "validation_failed")
        self.assertEqual(payload["details"], ["invalid_email", "invalid_phone", "invalid_taxId", "invalid_categoryId"])

    def test_duplicate_tax_id_conflicts(self) -> None:
        self.create_supplier(tax_id="11112222")
        response = self.client.post("/api/suppliers", json={"name": "İkinci", "tax_id": "11112222"}, headers=self.headers)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "duplicate")

    def test_update_supplier(self) -> None:
        supplier = self.create_supplier()

        response = self.client.patch(
            f"/api/suppliers/{supplier['id']}",
            json={"phone": "0212 555 44 33", "active": False},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["phone"], "0212 555 44 33")
        self.assertEqual(response.get_json()["active"], 0)

        empty = self.client.patch(f"/api/suppliers/{supplier['id']}", json={}, headers=self.headers)
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.get_json()["error"], "no_changes")

    def test_delete_supplier_blocked_by_orders(self) -> None:
        supplier = self.create_supplier()
        self.create_order(supplier_id=supplier["id"])

        response = self.client.delete(f"/api/suppliers/{supplier['id']}", headers=self.headers)
        self.assertEqual(response.status_code, 409)
        payload = response.get_json()
        self.assertEqual(payload["error"], "linked_records")
        self.assertEqual(payload["details"], {"orders": 1})

    def test_delete_supplier_without_orders(self) -> None:
        supplier = self.create_supplier()
        response = self.client.delete(f"/api/suppliers/{supplier['id']}", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(f"/api/suppliers/{supplier['id']}", headers=self.headers).status_code, 404)

    def test_approve_and_reject(self) -> None:
        supplier = self.create_supplier()

        rejected = self.client.post(f"/api/suppliers/{supplier['id']}/reject", headers=self.headers)
        self.assertEqual(rejected.get_json(), {"ok": True, "id": supplier["id"], "registration_status": "rejected"})

        approved = self.client.post(f"/api/suppliers/{supplier['id']}/approve", headers=self.headers)
        self.assertEqual(approved.get_json()["registration_status"], "approved")

    def test_list_filters(self) -> None:
        category_id = self.create_category("Kırtasiye")
        paper = self.create_supplier(name="Kağıt Dünyası", category_id=category_id)
        idle = self.create_supplier(name="Pasif Ltd", active=False)
        pending = self.create_supplier(name="Yeni Firma")
        self.client.post(f"/api/suppliers/{pending['id']}/reject", headers=self.headers)

        by_category = self.client.get(f"/api/suppliers?category_id={category_id}", headers=self.headers).get_json()
        self.assertEqual([row["id"] for row in by_category["items"]], [paper["id"]])
        self.assertEqual(by_category["items"][0]["category_name"], "Kırtasiye")

        inactive = self.client.get("/api/suppliers?active=false", headers=self.headers).get_json()
        self.assertEqual([row["id"] for row in inactive["items"]], [idle["id"]])

        rejected = self.client.get("/api/suppliers?status=rejected", headers=self.headers).get_json()
        self.assertEqual([row["id"] for row in rejected["items"]], [pending["id"]])

        searched = self.client.get("/api/suppliers?q=dünyası", headers=self.headers).get_json()
        self.assertEqual(searched["total"], 1)

    def test_score_without_evaluations(self) -> None:
        supplier = self.create_supplier()
        response = self.client.get(f"/api/suppliers/{supplier['id']}/score", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.get_json(),
            {"supplier_id": supplier["id"], "evaluation_count": 0, "average_score": None, "average_rating": None},
        )

    def test_categories(self) -> None:
        created = self.client.post("/api/categories", json={"name": "Temizlik"}, headers=self.headers)
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.get_json()["name"], "Temizlik")

        duplicate = self.client.post("/api/categories", json={"name": "Temizlik"}, headers=self.headers)
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.get_json()["error"], "already_exists")

        blank = self.client.post("/api/categories", json={"name": "  "}, headers=self.headers)
        self.assertEqual(blank.status_code, 400)
        self.assertEqual(blank.get_json()["error"], "name_required")

        listing = self.client.get("/api/categories", headers=self.headers).get_json()
        self.assertEqual([row["name"] for row in listing["items"]], ["Temizlik"])


if __name__ == "__main__":
    unittest.main()
