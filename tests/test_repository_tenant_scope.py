import unittest

from satinalma import create_app
from satinalma.config import Config
from satinalma.db import close_db, get_db
from satinalma.domain.contracts import ListQuery
from satinalma.infrastructure.repositories.base import TenantScopeRequiredError
from satinalma.infrastructure.repositories.request_repository import RequestRepository
from tests.helpers.temp_db import TempDbSandbox


class RequestRepositoryTenantScopeTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="repo_scope")
        TempConfig = self._temp_db.make_config(Config, TESTING=True, AUTH_ENABLED=False)
        self.app = create_app(TempConfig)

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_repository_requires_tenant_scope(self) -> None:
        with self.assertRaises(TenantScopeRequiredError):
            RequestRepository()
        with self.assertRaises(TenantScopeRequiredError):
            RequestRepository(tenant_id="   ")

    def test_request_repository_isolates_tenant_data(self) -> None:
        with self.app.app_context():
            db = get_db()
            repo_a = RequestRepository(tenant_id="tenant-a")
            repo_b = RequestRepository(tenant_id="tenant-b")

            a_id = repo_a.create(
                db,
                barcode="TLP-A-001",
                subject="Kırtasiye",
                budget=100.0,
                owner_user_id=None,
                responsible_user_id=None,
                unit_name=None,
                unit_email=None,
            )
            b_id = repo_b.create(
                db,
                barcode="TLP-B-001",
                subject="Temizlik",
                budget=200.0,
                owner_user_id=None,
                responsible_user_id=None,
                unit_name=None,
                unit_email=None,
            )
            db.commit()

            tenant_a_ids = [row["id"] for row in repo_a.list_page(db, ListQuery()).items]
            tenant_b_ids = [row["id"] for row in repo_b.list_page(db, ListQuery()).items]

            self.assertEqual(tenant_a_ids, [a_id])
            self.assertEqual(tenant_b_ids, [b_id])
            self.assertIsNone(repo_a.get_by_id(db, b_id))
            self.assertIsNone(repo_b.find_by_barcode(db, "TLP-A-001"))


if __name__ == "__main__":
    unittest.main()
