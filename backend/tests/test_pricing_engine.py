from __future__ import annotations

import unittest
from types import SimpleNamespace

from app.services.pricing.courier_settings import BUILT_IN_DEFAULTS, StaticCourierSettingRepository
from app.services.pricing.pricing_engine import compute_price_per_box, quote_for_order, round_to_hundred


def _row(**kw):
    base = dict(
        id=1,
        courier_name=None,
        category="",
        base_price_per_box=1200,
        min_total=0,
        commission_rate=10,
        urgent_commission_rate=12,
        urgent_surcharge_rate=0,
        is_active=True,
    )
    base.update(kw)
    return SimpleNamespace(**base)


class PricePerBoxTestCase(unittest.TestCase):
    def test_zero_quantity_short_circuits(self):
        quote = compute_price_per_box(1200, 0, 300000, 15, True)
        self.assertEqual(quote.final_price_per_box, 1200)
        self.assertFalse(quote.min_applied)
        self.assertFalse(quote.urgent_applied)
        self.assertEqual(quote.final_total, 0)

    def test_minimum_total_raises_unit_price(self):
        quote = compute_price_per_box(1200, 100, 300000, 0, False)
        self.assertEqual(quote.raw_total, 120000)
        self.assertEqual(quote.final_price_per_box, 3000)
        self.assertTrue(quote.min_applied)
        self.assertFalse(quote.urgent_applied)
        self.assertEqual(quote.final_total, 300000)

    def test_urgent_then_minimum(self):
        quote = compute_price_per_box(1200, 100, 300000, 15, True)
        self.assertEqual(quote.after_urgent, 1380)
        self.assertEqual(quote.raw_total, 138000)
        self.assertEqual(quote.final_price_per_box, 3000)
        self.assertTrue(quote.min_applied)
        self.assertTrue(quote.urgent_applied)

    def test_urgent_surcharge_alone_rounds_up(self):
        quote = compute_price_per_box(1000, 10, 0, 33, True)
        self.assertEqual(quote.final_price_per_box, 1330)
        quote = compute_price_per_box(999, 10, 0, 15, True)
        # 999 * 1.15 = 1148.85
        self.assertEqual(quote.final_price_per_box, 1149)
        self.assertFalse(quote.min_applied)

    def test_urgent_flag_without_rate_is_not_applied(self):
        quote = compute_price_per_box(1200, 10, 0, 0, True)
        self.assertFalse(quote.urgent_applied)
        self.assertEqual(quote.final_price_per_box, 1200)

    def test_minimum_already_met(self):
        quote = compute_price_per_box(1200, 300, 300000, 0, False)
        self.assertFalse(quote.min_applied)
        self.assertEqual(quote.final_price_per_box, 1200)

    def test_minimum_division_rounds_up(self):
        quote = compute_price_per_box(100, 7, 10000, 0, False)
        # 10000 / 7 = 1428.57...
        self.assertEqual(quote.final_price_per_box, 1429)

    def test_bad_inputs_clamp_instead_of_raising(self):
        quote = compute_price_per_box(-5, "x", None, float("nan"), True)
        self.assertEqual(quote.final_price_per_box, 0)
        self.assertFalse(quote.min_applied)

    def test_deterministic(self):
        a = compute_price_per_box(1250, 37, 99999, 7, True)
        b = compute_price_per_box(1250, 37, 99999, 7, True)
        self.assertEqual(a, b)
        self.assertEqual(a.to_dict(), b.to_dict())

    def test_quote_payload_keys(self):
        payload = compute_price_per_box(1200, 100, 300000, 15, True).to_dict()
        for key in ("finalPricePerBox", "minApplied", "urgentApplied", "explanation"):
            self.assertIn(key, payload)
        self.assertTrue(payload["explanation"])


class RoundToHundredTestCase(unittest.TestCase):
    def test_rounds_half_up(self):
        self.assertEqual(round_to_hundred(1234), 1200)
        self.assertEqual(round_to_hundred(1250), 1300)
        self.assertEqual(round_to_hundred(1249.99), 1200)
        self.assertEqual(round_to_hundred(0), 0)

    def test_negative_clamps_to_zero(self):
        self.assertEqual(round_to_hundred(-450), 0)


class CourierSettingLookupTestCase(unittest.TestCase):
    def test_courier_row_beats_category_default(self):
        repo = StaticCourierSettingRepository([
            _row(id=1, category="fresh", base_price_per_box=1500),
            _row(id=2, category="fresh", courier_name="CJ", base_price_per_box=1800),
        ])
        setting = repo.find("cj", "fresh")
        self.assertEqual(setting.base_price_per_box, 1800)
        self.assertEqual(setting.setting_id, 2)

    def test_category_default_when_courier_unknown(self):
        repo = StaticCourierSettingRepository([
            _row(id=1, category="fresh", base_price_per_box=1500),
            _row(id=2, category="fresh", courier_name="CJ", base_price_per_box=1800),
        ])
        self.assertEqual(repo.find("Hanjin", "fresh").setting_id, 1)

    def test_inactive_rows_and_missing_category_fall_back_to_built_ins(self):
        repo = StaticCourierSettingRepository([
            _row(id=3, category="fresh", courier_name="CJ", is_active=False),
        ])
        self.assertEqual(repo.find("CJ", "fresh"), BUILT_IN_DEFAULTS)
        self.assertEqual(repo.find("CJ", "frozen"), BUILT_IN_DEFAULTS)

    def test_quote_for_order_uses_setting(self):
        repo = StaticCourierSettingRepository([
            _row(id=4, category="general", courier_name="Lotte", base_price_per_box=1200,
                 min_total=300000, urgent_surcharge_rate=15),
        ])
        quote, setting = quote_for_order(repo, "Lotte", "general", 100, True)
        self.assertEqual(setting.setting_id, 4)
        self.assertEqual(quote.final_price_per_box, 3000)
        self.assertTrue(quote.urgent_applied)


if __name__ == "__main__":
    unittest.main()
