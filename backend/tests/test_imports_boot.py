from __future__ import annotations

import importlib
import os
import unittest

from celery.schedules import crontab


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("app")
        create_app = getattr(module, "create_app", None)
        self.assertTrue(callable(create_app))

    def test_import_segments(self):
        for name in ("segment_users", "segment_orders_api", "segment_checkin", "segment_payment_webhooks",
                     "segment_settlements", "segment_disputes", "segment_pricing", "segment_reconciliation_admin"):
            self.assertIsNotNone(importlib.import_module(f"app.segments.{name}"))


class CeleryConfigTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        from app import create_app
        from app.celery_app import create_celery_app

        cls.flask_app = create_app()
        cls.celery = create_celery_app(cls.flask_app)

    @classmethod
    def tearDownClass(cls):
        if cls._prev_db_uri is None:
            os.environ.pop("SQLALCHEMY_DATABASE_URI", None)
        else:
            os.environ["SQLALCHEMY_DATABASE_URI"] = cls._prev_db_uri
        if cls._prev_db_url is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = cls._prev_db_url

    def test_monthly_statements_run_on_the_first_in_seoul(self):
        self.assertEqual(self.celery.conf.timezone, "Asia/Seoul")
        entry = self.celery.conf.beat_schedule["monthly-settlement-statements"]
        self.assertEqual(entry["task"], "app.tasks.settlement_tasks.generate_monthly_statements")
        self.assertEqual(entry["schedule"], crontab(minute=0, hour=3, day_of_month=1))

    def test_json_only_serialization(self):
        self.assertEqual(self.celery.conf.task_serializer, "json")
        self.assertEqual(list(self.celery.conf.accept_content), ["json"])


if __name__ == "__main__":
    unittest.main()
