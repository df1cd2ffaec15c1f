from __future__ import annotations

import itertools
import os
import unittest
from datetime import datetime

from app import create_app
from app.extensions import db
from app.models import ClosingReport, Deduction, Order, SettlementStatement, User
from app.tasks.settlement_tasks import generate_monthly_statements_task
from app.utils.jwt_utils import create_token
from app.utils.timezone import kst_period

_seq = itertools.count(1)


class SettlementFlowTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        cls.app = create_app()
        cls.app.config.update(TESTING=True, PORTONE_WEBHOOK_SECRET="")
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
            u = User(name=f"{role}-{n}", email=f"{role}-{n}@settle.test", role=role)
            u.set_password("pw-123456")
            db.session.add(u)
            db.session.commit()
            return int(u.id)

    @staticmethod
    def _auth(user_id: int, **extra) -> dict:
        headers = {"Authorization": f"Bearer {create_token(user_id)}"}
        headers.update(extra)
        return headers

    def _post(self, path, user_id, payload=None, expected=200, **headers):
        res = self.client.post(path, json=payload or {}, headers=self._auth(user_id, **headers))
        self.assertEqual(res.status_code, expected, f"{path}: {res.get_data(as_text=True)}")
        return res.get_json(force=True)

    def _patch(self, path, user_id, payload, expected=200):
        res = self.client.patch(path, json=payload, headers=self._auth(user_id))
        self.assertEqual(res.status_code, expected, f"{path}: {res.get_data(as_text=True)}")
        return res.get_json(force=True)

    def _order_through_balance_payment(self, requester_id, helper_id, payment_id, category="general") -> int:
        order = self._post("/api/orders", requester_id,
                           {"companyName": "CJ", "category": category, "quantity": 100}, expected=201)
        order_id = int(order["order"]["id"])
        self.assertEqual(order["order"]["price_per_unit"], 1200)
        self._post(f"/api/admin/orders/{order_id}/assign", self.admin_id, {"helperId": helper_id})
        self._post("/api/checkin", helper_id, {"orderId": order_id}, expected=201)

        closing = {"deliveredCount": 100, "returnedCount": 5, "extraCosts": 3000}
        first = self._post(f"/api/orders/{order_id}/closing", helper_id, closing, expected=201,
                           **{"Idempotency-Key": f"closing-{order_id}"})
        self.assertEqual(first["orderStatus"], "closing_submitted")
        self.assertEqual(first["closingReport"]["total_amount"], 141_900)

        replay = self._post(f"/api/orders/{order_id}/closing", helper_id, closing, expected=201,
                            **{"Idempotency-Key": f"closing-{order_id}"})
        self.assertEqual(replay, first)
        reuse = self._post(f"/api/orders/{order_id}/closing", helper_id, dict(closing, deliveredCount=90),
                           expected=409, **{"Idempotency-Key": f"closing-{order_id}"})
        self.assertEqual(reuse["error"], "IDEMPOTENCY_KEY_REUSE")

        payment = self._post(f"/api/orders/{order_id}/balance-payment", requester_id,
                             {"paymentId": payment_id}, expected=201)
        self.assertEqual(payment["payment"]["amount"], 113_520)

        paid = self.client.post("/api/webhooks/portone", json={
            "type": "Transaction.Paid",
            "data": {"paymentId": payment_id, "transactionId": f"tx-{payment_id}"},
        })
        self.assertEqual(paid.status_code, 200)
        self.assertEqual(paid.get_json(force=True)["orderStatus"], "balance_paid")
        return order_id

    def test_order_to_paid_statement_with_dispute_deduction(self):
        requester_id = self._user("requester")
        helper_id = self._user("helper")
        leader_id = self._user("helper")
        period = kst_period()

        team = self._post("/api/admin/teams", self.admin_id,
                          {"name": "Gangnam crew", "leaderId": leader_id, "commissionRate": 3}, expected=201)
        self._post(f"/api/admin/teams/{team['team']['id']}/members", self.admin_id,
                   {"helperId": helper_id}, expected=201)

        order_id = self._order_through_balance_payment(requester_id, helper_id, "pay-flow-1")

        stmt = self._post("/api/admin/settlements/generate", self.admin_id,
                          {"helperId": helper_id, "period": period}, expected=201)["statement"]
        stmt_id = int(stmt["id"])
        self.assertEqual(stmt["order_count"], 1)
        self.assertEqual(stmt["total_amount"], 141_900)
        self.assertEqual(stmt["commission_amount"], 14_190)
        self.assertEqual(stmt["team_commission_amount"], 4_257)
        self.assertEqual(stmt["platform_commission_amount"], 9_933)
        self.assertEqual(stmt["net_payout"], 127_710)
        self.assertEqual(stmt["status"], "draft")

        dispute = self._post("/api/disputes", requester_id, {
            "orderId": order_id,
            "disputeType": "count",
            "description": "five boxes never arrived",
            "requestedDeliveredCount": 95,
        }, expected=201)["dispute"]
        dispute_id = int(dispute["id"])
        self.assertEqual(dispute["settlement_id"], stmt_id)
        self.assertEqual(dispute["status"], "pending")

        skipped = self._patch(f"/api/admin/disputes/{dispute_id}/status", self.admin_id,
                              {"status": "resolved"}, expected=409)
        self.assertEqual(skipped["error"], "ILLEGAL_TRANSITION")

        self._patch(f"/api/admin/disputes/{dispute_id}/status", self.admin_id, {"status": "reviewing"})
        resolved = self._patch(f"/api/admin/disputes/{dispute_id}/status", self.admin_id, {
            "status": "resolved",
            "resolution": "count corrected",
            "adminReply": "deducted from this month",
        })
        self.assertEqual(resolved["dispute"]["status"], "resolved")
        self.assertTrue(resolved["dispute"]["resolved_at"])
        self.assertEqual(resolved["deduction"]["amount"], 6_600)
        self.assertEqual(resolved["deduction"]["settlement_id"], stmt_id)
        self.assertTrue(resolved["deduction"]["settlement_applied"])

        for late_write in ({"adminReply": "changed my mind"}, {"status": "reviewing"}, {"status": "resolved"}):
            closed = self._patch(f"/api/admin/disputes/{dispute_id}/status", self.admin_id, late_write, expected=409)
            self.assertEqual(closed["error"], "DISPUTE_TERMINAL")

        detail = self.client.get(f"/api/admin/settlements/{stmt_id}", headers=self._auth(self.admin_id))
        detail_body = detail.get_json(force=True)
        self.assertEqual(detail_body["statement"]["deduction_amount"], 6_600)
        self.assertEqual(detail_body["statement"]["net_payout"], 121_110)
        self.assertEqual([o["id"] for o in detail_body["orders"]], [order_id])
        self.assertEqual(len(detail_body["deductions"]), 1)

        regenerated = self._post("/api/admin/settlements/generate", self.admin_id,
                                 {"helperId": helper_id, "period": period}, expected=201)["statement"]
        self.assertEqual(regenerated["id"], stmt_id)
        self.assertEqual(regenerated["net_payout"], 121_110)

        recon = self._post("/api/admin/reconcile", self.admin_id, {"period": period})
        self.assertEqual([i for i in recon["summary"]["drift_items"] if i["statement_id"] == stmt_id], [])
        self.assertTrue(recon["report_id"])

        self.assertEqual(self._post(f"/api/admin/settlements/{stmt_id}/confirm", self.admin_id)["statement"]["status"],
                         "confirmed")
        paid = self._post(f"/api/admin/settlements/{stmt_id}/pay", self.admin_id)["statement"]
        self.assertEqual(paid["status"], "paid")
        self.assertTrue(paid["paid_at"])

        with self.app.app_context():
            self.assertEqual(db.session.get(Order, order_id).status, "settlement_paid")
            self.assertEqual(Deduction.query.filter_by(dispute_id=dispute_id).count(), 1)

        self._post("/api/admin/settlements/generate", self.admin_id,
                   {"helperId": helper_id, "period": period}, expected=409)
        self._post(f"/api/admin/settlements/{stmt_id}/pay", self.admin_id, expected=409)

    def test_reconciliation_flags_tampered_statement(self):
        requester_id = self._user("requester")
        helper_id = self._user("helper")
        period = kst_period()
        self._order_through_balance_payment(requester_id, helper_id, "pay-recon-1")
        stmt = self._post("/api/admin/settlements/generate", self.admin_id,
                          {"helperId": helper_id, "period": period}, expected=201)["statement"]

        with self.app.app_context():
            row = db.session.get(SettlementStatement, int(stmt["id"]))
            row.net_payout = int(row.net_payout) + 500
            db.session.commit()

        recon = self._post("/api/admin/reconcile", self.admin_id, {"period": period, "persist": False})
        checks = {(item["statement_id"], item["check"]) for item in recon["summary"]["drift_items"]}
        self.assertIn((int(stmt["id"]), "net_payout"), checks)
        self.assertIsNone(recon["report_id"])

    def test_monthly_task_drafts_statements(self):
        helper_id = self._user("helper")
        requester_id = self._user("requester")
        period = kst_period()
        with self.app.app_context():
            order = Order(requester_id=requester_id, status="balance_paid", company_name="Hanjin",
                          category="general", quantity=10, price_per_unit=2000, matched_helper_id=helper_id)
            db.session.add(order)
            db.session.flush()
            db.session.add(ClosingReport(order_id=int(order.id), helper_id=helper_id, delivered_count=10,
                                         supply_amount=20_000, vat_amount=2_000, total_amount=22_000))
            db.session.commit()

            result = generate_monthly_statements_task(period=period, trace_id="monthly-test")
            self.assertTrue(result["ok"])
            stmt = SettlementStatement.query.filter_by(helper_id=helper_id, period=period).first()
            self.assertIsNotNone(stmt)
            self.assertIn(int(stmt.id), result["statement_ids"])
            self.assertEqual(stmt.total_amount, 22_000)
            self.assertEqual(stmt.commission_amount, 2_200)
            self.assertEqual(stmt.net_payout, 19_800)

    def _seed_closed_order(self, requester_id, helper_id, closed_at, status="balance_paid") -> int:
        with self.app.app_context():
            order = Order(requester_id=requester_id, status=status, company_name="Hanjin",
                          category="general", quantity=10, price_per_unit=2000, matched_helper_id=helper_id)
            db.session.add(order)
            db.session.flush()
            db.session.add(ClosingReport(order_id=int(order.id), helper_id=helper_id, delivered_count=10,
                                         supply_amount=20_000, vat_amount=2_000, total_amount=22_000,
                                         created_at=closed_at))
            db.session.commit()
            return int(order.id)

    def _generate(self, helper_id, period, expected=201):
        return self._post("/api/admin/settlements/generate", self.admin_id,
                          {"helperId": helper_id, "period": period}, expected=expected)

    def _deduct(self, helper_id, amount) -> int:
        body = self._post("/api/admin/deductions", self.admin_id,
                          {"helperId": helper_id, "amount": amount}, expected=201)
        return int(body["deduction"]["id"])

    def _deduction(self, deduction_id):
        with self.app.app_context():
            row = db.session.get(Deduction, deduction_id)
            return row.settlement_applied, row.settlement_id

    def test_regeneration_keeps_rates_frozen_on_the_order(self):
        requester_id = self._user("requester")
        helper_id = self._user("helper")
        period = kst_period()
        order_id = self._order_through_balance_payment(requester_id, helper_id, "pay-frozen-1", category="bulky")
        with self.app.app_context():
            order = db.session.get(Order, order_id)
            self.assertEqual(order.commission_rate, 10)
            self.assertEqual(order.team_rate, 0)

        first = self._generate(helper_id, period)["statement"]
        self.assertEqual(first["commission_amount"], 14_190)

        self._post("/api/admin/courier-settings", self.admin_id,
                   {"category": "bulky", "commissionRate": 30}, expected=201)
        leader_id = self._user("helper")
        team = self._post("/api/admin/teams", self.admin_id,
                          {"name": "Late crew", "leaderId": leader_id, "commissionRate": 5}, expected=201)
        self._post(f"/api/admin/teams/{team['team']['id']}/members", self.admin_id,
                   {"helperId": helper_id}, expected=201)

        again = self._generate(helper_id, period)["statement"]
        self.assertEqual(again["id"], first["id"])
        self.assertEqual(again["commission_amount"], 14_190)
        self.assertEqual(again["team_commission_amount"], 0)
        self.assertEqual(again["net_payout"], 127_710)

    def test_empty_statement_is_refused_and_keeps_deductions_pending(self):
        requester_id = self._user("requester")
        helper_id = self._user("helper")
        large = self._deduct(helper_id, 50_000)

        refused = self._generate(helper_id, "2020-01", expected=409)
        self.assertEqual(refused["error"], "NO_SETTLEABLE_ORDERS")
        self.assertEqual(self._deduction(large), (False, None))

        self._seed_closed_order(requester_id, helper_id, datetime(2024, 5, 10, 3, 0))
        small = self._deduct(helper_id, 5_000)
        stmt = self._generate(helper_id, "2024-05")["statement"]
        self.assertEqual(stmt["order_count"], 1)
        self.assertEqual(stmt["deduction_amount"], 5_000)
        self.assertEqual(stmt["net_payout"], 14_800)
        self.assertEqual(stmt["warning"], "")
        self.assertEqual(self._deduction(small), (True, stmt["id"]))
        self.assertEqual(self._deduction(large), (False, None))

    def test_order_paid_after_its_month_settled_rolls_forward(self):
        requester_id = self._user("requester")
        helper_id = self._user("helper")
        self._seed_closed_order(requester_id, helper_id, datetime(2024, 3, 10, 3, 0))
        late_id = self._seed_closed_order(requester_id, helper_id, datetime(2024, 3, 20, 3, 0),
                                          status="closing_submitted")

        march = self._generate(helper_id, "2024-03")["statement"]
        self.assertEqual(march["order_count"], 1)
        self._post(f"/api/admin/settlements/{march['id']}/confirm", self.admin_id)
        self._post(f"/api/admin/settlements/{march['id']}/pay", self.admin_id)

        with self.app.app_context():
            db.session.get(Order, late_id).status = "balance_paid"
            db.session.commit()

        self._generate(helper_id, "2024-03", expected=409)
        april = self._generate(helper_id, "2024-04")["statement"]
        self.assertEqual(april["order_count"], 1)
        self.assertEqual(april["total_amount"], 22_000)
        detail = self.client.get(f"/api/admin/settlements/{april['id']}", headers=self._auth(self.admin_id))
        self.assertEqual([o["id"] for o in detail.get_json(force=True)["orders"]], [late_id])

    def test_pending_deductions_land_on_latest_open_statement(self):
        requester_id = self._user("requester")
        helper_id = self._user("helper")
        self._seed_closed_order(requester_id, helper_id, datetime(2024, 3, 10, 3, 0))
        self._seed_closed_order(requester_id, helper_id, datetime(2024, 4, 10, 3, 0))
        march = self._generate(helper_id, "2024-03")["statement"]
        april = self._generate(helper_id, "2024-04")["statement"]
        self.assertEqual((march["order_count"], april["order_count"]), (1, 1))

        deduction_id = self._deduct(helper_id, 1_000)
        march = self._generate(helper_id, "2024-03")["statement"]
        self.assertEqual(march["deduction_amount"], 0)
        self.assertEqual(self._deduction(deduction_id), (False, None))

        april = self._generate(helper_id, "2024-04")["statement"]
        self.assertEqual(april["deduction_amount"], 1_000)
        self.assertEqual(april["net_payout"], 18_800)
        self.assertEqual(self._deduction(deduction_id), (True, april["id"]))

    def test_admin_routes_require_admin(self):
        helper_id = self._user("helper")
        self._post("/api/admin/settlements/generate", helper_id,
                   {"helperId": helper_id, "period": kst_period()}, expected=403)
        self._post("/api/admin/settlements/generate", self.admin_id,
                   {"helperId": helper_id, "period": "2026-13"}, expected=400)


if __name__ == "__main__":
    unittest.main()
