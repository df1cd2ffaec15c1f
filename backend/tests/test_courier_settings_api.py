from __future__ import annotations

import itertools
import os
import unittest

from app import create_app
from app.extensions import db
from app.models import User
from app.utils.jwt_utils import create_token

_seq = itertools.count(1)


class CourierSettingsApiTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            db.create_all()
        cls.client = cls.app.test_client()
        cls.admin_id = cls._user("admin")
        cls.requester_id = cls._user("requester")

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

    @classmethod
    def _user(cls, role: str) -> int:
        with cls.app.app_context():
            n = next(_seq)
            u = User(name=f"{role}-{n}", email=f"{role}-{n}@pricing.test", role=role)
            u.set_password("pw-123456")
            db.session.add(u)
            db.session.commit()
            return int(u.id)

    @staticmethod
    def _auth(user_id: int) -> dict:
        return {"Authorization": f"Bearer {create_token(user_id)}"}

    def _quote(self, **payload):
        res = self.client.post("/api/pricing/quote", json=payload, headers=self._auth(self.requester_id))
        self.assertEqual(res.status_code, 200, res.get_data(as_text=True))
        return res.get_json(force=True)

    def test_money_fields_round_to_hundred_and_apply_to_next_quote(self):
        res = self.client.post("/api/admin/courier-settings", json={
            "courierName": "Lotte",
            "category": "fresh",
            "basePricePerBox": 1234,
            "minTotal": 299_950,
            "commissionRate": 12,
            "urgentCommissionRate": 15,
            "urgentSurchargeRate": 15,
        }, headers=self._auth(self.admin_id))
        self.assertEqual(res.status_code, 201, res.get_data(as_text=True))
        setting = res.get_json(force=True)["setting"]
        self.assertEqual(setting["base_price_per_box"], 1200)
        self.assertEqual(setting["min_total"], 300_000)

        quote = self._quote(companyName="Lotte", category="fresh", quantity=100, isUrgent=True)
        self.assertEqual(quote["settingId"], setting["id"])
        self.assertEqual(quote["commissionRate"], 15)
        self.assertEqual(quote["quote"]["finalPricePerBox"], 3000)
        self.assertTrue(quote["quote"]["minApplied"])
        self.assertTrue(quote["quote"]["urgentApplied"])

        patched = self.client.patch(f"/api/admin/courier-settings/{setting['id']}",
                                    json={"minTotal": 0}, headers=self._auth(self.admin_id))
        self.assertEqual(patched.status_code, 200)
        quote = self._quote(companyName="Lotte", category="fresh", quantity=100, isUrgent=True)
        self.assertEqual(quote["quote"]["finalPricePerBox"], 1380)
        self.assertFalse(quote["quote"]["minApplied"])

        removed = self.client.delete(f"/api/admin/courier-settings/{setting['id']}", headers=self._auth(self.admin_id))
        self.assertEqual(removed.status_code, 200)
        self.assertFalse(removed.get_json(force=True)["setting"]["is_active"])
        quote = self._quote(companyName="Lotte", category="fresh", quantity=100)
        self.assertIsNone(quote["settingId"])
        self.assertEqual(quote["quote"]["finalPricePerBox"], 1200)

    def test_category_default_row_used_for_unknown_courier(self):
        res = self.client.post("/api/admin/courier-settings", json={"category": "frozen", "basePricePerBox": 1800},
                               headers=self._auth(self.admin_id))
        self.assertEqual(res.status_code, 201)
        quote = self._quote(companyName="Hanjin", category="frozen", quantity=10)
        self.assertEqual(quote["quote"]["finalPricePerBox"], 1800)

    def test_validation(self):
        for payload in ({"category": "x", "commissionRate": 101},
                        {"category": "x", "basePricePerBox": -100},
                        {"category": "x", "minTotal": "lots"},
                        {"basePricePerBox": 1000}):
            res = self.client.post("/api/admin/courier-settings", json=payload, headers=self._auth(self.admin_id))
            self.assertEqual(res.status_code, 400, payload)
            self.assertEqual(res.get_json(force=True)["error"], "VALIDATION_ERROR")

        res = self.client.patch("/api/admin/courier-settings/99999", json={"minTotal": 0},
                                headers=self._auth(self.admin_id))
        self.assertEqual(res.status_code, 404)

    def test_non_admin_is_forbidden(self):
        res = self.client.get("/api/admin/courier-settings", headers=self._auth(self.requester_id))
        self.assertEqual(res.status_code, 403)
        res = self.client.post("/api/pricing/quote", json={"quantity": 1})
        self.assertEqual(res.status_code, 401)


if __name__ == "__main__":
    unittest.main()
