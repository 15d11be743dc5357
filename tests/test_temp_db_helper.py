import os
import tempfile
import unittest
from pathlib import Path

from satinalma import create_app
from satinalma.config import Config
from satinalma.db import close_db, get_db
from tests.helpers.temp_db import TempDbSandbox, assert_safe_temp_db_path, open_sqlite_temp_connection


class TempDbSandboxTest(unittest.TestCase):
    def test_sandbox_lives_in_temp_and_is_removed(self) -> None:
        with TempDbSandbox(prefix="satinalma_sandbox") as sandbox:
            temp_dir = sandbox.temp_dir
            self.assertTrue(Path(sandbox.db_path).resolve().is_relative_to(Path(tempfile.gettempdir()).resolve()))
            self.assertTrue(os.path.exists(sandbox.db_path))
        self.assertFalse(os.path.exists(temp_dir))

    def test_paths_inside_the_repository_are_refused(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]
        with self.assertRaises(ValueError):
            assert_safe_temp_db_path(str(repo_root / "database" / "satinalma.db"))
        with self.assertRaises(ValueError):
            open_sqlite_temp_connection(os.path.join(os.getcwd(), "satinalma_test.db"))

    def test_config_points_the_app_at_the_sandbox(self) -> None:
        with TempDbSandbox(prefix="satinalma_sandbox") as sandbox:
            config = sandbox.make_config(Config, LOG_LEVEL="DEBUG")
            self.assertTrue(issubclass(config, Config))
            self.assertEqual(config.DB_PATH, sandbox.db_path)
            self.assertFalse(config.AUTH_ENABLED)
            self.assertFalse(config.JOB_SCHEDULER_ENABLED)
            self.assertEqual(config.MAIL_MODE, "memory")
            self.assertEqual(config.LOG_LEVEL, "DEBUG")

            app = create_app(config)
            with app.app_context():
                get_db().execute("INSERT INTO tenants (id, name) VALUES ('tenant-kum', 'Kum Havuzu')")
                get_db().commit()
                close_db()

            conn = open_sqlite_temp_connection(sandbox.db_path)
            try:
                row = conn.execute("SELECT name FROM tenants WHERE id = 'tenant-kum'").fetchone()
            finally:
                conn.close()
            self.assertEqual(row[0], "Kum Havuzu")


if __name__ == "__main__":
    unittest.main()
