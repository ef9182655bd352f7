import os
import shutil
import sqlite3
import tempfile
import unittest
import uuid

from marketplace import create_app
from marketplace.config import Config
from marketplace.db import SCHEMA_TABLES, close_db
from marketplace.db_migrations import to_sqlalchemy_url


def _table_exists(db_path: str, table_name: str) -> bool:
    conn = sqlite3.connect(db_path)
    try:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
            (table_name,),
        ).fetchone()
        return row is not None
    finally:
        conn.close()


class DbMigrationsTest(unittest.TestCase):
    def setUp(self) -> None:
        base_tmp = tempfile.gettempdir()
        self._tmpdir_path = os.path.join(base_tmp, f"marketplace_migrations_test_{uuid.uuid4().hex}")
        os.makedirs(self._tmpdir_path, exist_ok=True)
        self.db_path = os.path.join(self._tmpdir_path, "marketplace_test.db")
        self._prev_env = os.environ.get("FLASK_ENV")
        os.environ["FLASK_ENV"] = "development"

    def tearDown(self) -> None:
        if self._prev_env is None:
            os.environ.pop("FLASK_ENV", None)
        else:
            os.environ["FLASK_ENV"] = self._prev_env
        shutil.rmtree(self._tmpdir_path, ignore_errors=True)

    def _build_app(self, *, testing: bool, db_auto_init: bool):
        db_path = self.db_path

        class TempConfig(Config):
            DATABASE_DIR = self._tmpdir_path
            DB_PATH = db_path
            TESTING = testing
            DB_AUTO_INIT = db_auto_init
            LOG_JSON = False

        return create_app(TempConfig)

    def test_schema_not_created_by_default(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        with app.app_context():
            close_db()

        self.assertFalse(_table_exists(self.db_path, "cotacoes"))

    def test_schema_created_with_explicit_dev_flag(self) -> None:
        app = self._build_app(testing=False, db_auto_init=True)
        with app.app_context():
            close_db()

        for table, _ddl in SCHEMA_TABLES:
            self.assertTrue(_table_exists(self.db_path, table), table)

    def test_flask_db_upgrade_and_downgrade(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        runner = app.test_cli_runner()

        upgrade_result = runner.invoke(args=["db", "upgrade"])
        self.assertEqual(upgrade_result.exit_code, 0, msg=upgrade_result.output)
        self.assertTrue(_table_exists(self.db_path, "cotacoes"))
        self.assertTrue(_table_exists(self.db_path, "pedidos"))

        downgrade_result = runner.invoke(args=["db", "downgrade", "base"])
        self.assertEqual(downgrade_result.exit_code, 0, msg=downgrade_result.output)
        self.assertFalse(_table_exists(self.db_path, "cotacoes"))

        reupgrade_result = runner.invoke(args=["db", "upgrade"])
        self.assertEqual(reupgrade_result.exit_code, 0, msg=reupgrade_result.output)
        self.assertTrue(_table_exists(self.db_path, "cotacoes"))

    def test_seed_demo_is_idempotent(self) -> None:
        app = self._build_app(testing=False, db_auto_init=True)
        runner = app.test_cli_runner()

        first = runner.invoke(args=["seed-demo"])
        self.assertEqual(first.exit_code, 0, msg=first.output)
        second = runner.invoke(args=["seed-demo"])
        self.assertEqual(second.exit_code, 0, msg=second.output)

        conn = sqlite3.connect(self.db_path)
        try:
            users = conn.execute("SELECT COUNT(*) FROM users WHERE email = 'cliente@demo.obras'").fetchone()[0]
            groups = conn.execute("SELECT COUNT(*) FROM grupos_insumo").fetchone()[0]
        finally:
            conn.close()
        self.assertEqual(users, 1)
        self.assertEqual(groups, 3)

    def test_sqlalchemy_url_conversion(self) -> None:
        self.assertEqual(to_sqlalchemy_url("postgres://u:p@h/db"), "postgresql://u:p@h/db")
        self.assertTrue(to_sqlalchemy_url(self.db_path).startswith("sqlite:///"))


if __name__ == "__main__":
    unittest.main()
