from __future__ import annotations

import itertools
import os
import unittest

from app import create_app
from app.extensions import db
from app.models import ClosingReport, Deduction, Order, User
from app.utils.jwt_utils import create_token

_seq = itertools.count(1)


class DisputeApiTestCase(unittest.TestCase):
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
            u = User(name=f"{role}-{n}", email=f"{role}-{n}@dispute.test", role=role)
            u.set_password("pw-123456")
            db.session.add(u)
            db.session.commit()
            return int(u.id)

    @staticmethod
    def _auth(user_id: int) -> dict:
        return {"Authorization": f"Bearer {create_token(user_id)}"}

    def _closed_order(self, requester_id: int, helper_id: int, status: str = "closing_submitted") -> int:
        with self.app.app_context():
            order = Order(requester_id=requester_id, status=status, company_name="CJ", category="general",
                          quantity=20, price_per_unit=1000, matched_helper_id=helper_id)
            db.session.add(order)
            db.session.flush()
            if status != "open":
                db.session.add(ClosingReport(order_id=int(order.id), helper_id=helper_id, delivered_count=20,
                                             supply_amount=20_000, vat_amount=2_000, total_amount=22_000))
            db.session.commit()
            return int(order.id)

    def _open_dispute(self, user_id: int, order_id: int, expected: int = 201, **extra) -> dict:
        payload = {"orderId": order_id, "disputeType": "count", **extra}
        res = self.client.post("/api/disputes", json=payload, headers=self._auth(user_id))
        self.assertEqual(res.status_code, expected, res.get_data(as_text=True))
        return res.get_json(force=True)

    def _update(self, dispute_id: int, payload: dict, expected: int = 200) -> dict:
        res = self.client.patch(f"/api/admin/disputes/{dispute_id}/status", json=payload,
                                headers=self._auth(self.admin_id))
        self.assertEqual(res.status_code, expected, res.get_data(as_text=True))
        return res.get_json(force=True)

    def test_explicit_amount_wins_and_waits_for_next_statement(self):
        requester_id = self._user("requester")
        helper_id = self._user("helper")
        order_id = self._closed_order(requester_id, helper_id)

        dispute = self._open_dispute(helper_id, order_id, requestedDeliveredCount=18)["dispute"]
        self.assertIsNone(dispute["settlement_id"])
        self._update(dispute["id"], {"status": "reviewing"})
        body = self._update(dispute["id"], {"status": "resolved", "deductionAmount": 5_000})
        self.assertEqual(body["dispute"]["deduction_amount"], 5_000)
        self.assertEqual(body["deduction"]["amount"], 5_000)
        self.assertFalse(body["deduction"]["settlement_applied"])
        self.assertIsNone(body["deduction"]["settlement_id"])

        detail = self.client.get(f"/api/admin/disputes/{dispute['id']}", headers=self._auth(self.admin_id))
        self.assertEqual(detail.get_json(force=True)["deduction"]["id"], body["deduction"]["id"])

    def test_rejected_dispute_creates_no_deduction(self):
        requester_id = self._user("requester")
        helper_id = self._user("helper")
        order_id = self._closed_order(requester_id, helper_id)
        dispute = self._open_dispute(requester_id, order_id, requestedDeliveredCount=10)["dispute"]

        self._update(dispute["id"], {"adminReply": "looking into it"})
        self._update(dispute["id"], {"status": "reviewing"})
        body = self._update(dispute["id"], {"status": "rejected", "resolution": "photos confirm 20 boxes"})
        self.assertEqual(body["dispute"]["status"], "rejected")
        self.assertEqual(body["dispute"]["admin_reply"], "looking into it")
        self.assertIsNone(body["deduction"])
        with self.app.app_context():
            self.assertEqual(Deduction.query.filter_by(dispute_id=dispute["id"]).count(), 0)

    def test_open_dispute_guards(self):
        requester_id = self._user("requester")
        helper_id = self._user("helper")
        outsider = self._user("requester")

        fresh_order = self._closed_order(requester_id, helper_id, status="open")
        self._open_dispute(requester_id, fresh_order, expected=409)

        order_id = self._closed_order(requester_id, helper_id)
        self._open_dispute(outsider, order_id, expected=403)
        self._open_dispute(self._user("helper"), order_id, expected=403)
        bad = self._open_dispute(requester_id, order_id, expected=400, disputeType="vibes")
        self.assertEqual(bad["error"], "VALIDATION_ERROR")
        self._open_dispute(requester_id, 999_999, expected=404)

        dispute = self._open_dispute(requester_id, order_id)["dispute"]
        nothing = self._update(dispute["id"], {}, expected=400)
        self.assertEqual(nothing["error"], "VALIDATION_ERROR")
        self._update(dispute["id"], {"status": "archived"}, expected=400)
        self._update(dispute["id"], {"status": "reviewing", "deductionAmount": -1}, expected=400)

    def test_manual_admin_deduction(self):
        helper_id = self._user("helper")
        res = self.client.post("/api/admin/deductions", json={"helperId": helper_id, "amount": 3_000},
                               headers=self._auth(self.admin_id))
        self.assertEqual(res.status_code, 201, res.get_data(as_text=True))
        deduction = res.get_json(force=True)["deduction"]
        self.assertEqual(deduction["reason"], "manual deduction")
        self.assertFalse(deduction["settlement_applied"])

        for payload in ({"helperId": helper_id, "amount": 0},
                        {"helperId": self.admin_id, "amount": 100},
                        {"amount": 100}):
            res = self.client.post("/api/admin/deductions", json=payload, headers=self._auth(self.admin_id))
            self.assertEqual(res.status_code, 400, payload)

        res = self.client.post("/api/admin/deductions", json={"helperId": helper_id, "amount": 100},
                               headers=self._auth(helper_id))
        self.assertEqual(res.status_code, 403)

    def test_admin_order_status_override(self):
        requester_id = self._user("requester")
        order = self.client.post("/api/orders", json={"companyName": "CJ", "category": "general", "quantity": 5},
                                 headers=self._auth(requester_id)).get_json(force=True)["order"]

        res = self.client.post(f"/api/admin/orders/{order['id']}/status", json={"status": "in_progress"},
                               headers=self._auth(self.admin_id))
        self.assertEqual(res.status_code, 403)

        res = self.client.post(f"/api/admin/orders/{order['id']}/status", json={"status": "cancelled"},
                               headers=self._auth(self.admin_id))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json(force=True)["order"]["status"], "cancelled")

        res = self.client.post(f"/api/admin/orders/{order['id']}/status", json={"status": "open"},
                               headers=self._auth(self.admin_id))
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.get_json(force=True)["reason"], "terminal_state")


if __name__ == "__main__":
    unittest.main()
