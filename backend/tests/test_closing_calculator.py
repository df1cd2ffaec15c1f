from __future__ import annotations

import unittest

from app.services.pricing.closing_calculator import calculate_closing, count_correction_amount


class ClosingCalculatorTestCase(unittest.TestCase):
    def test_amounts_for_a_typical_day(self):
        amounts = calculate_closing(100, 5, 0, 1200, 3000)
        self.assertEqual(amounts.billable_count, 105)
        self.assertEqual(amounts.delivery_return_amount, 126_000)
        self.assertEqual(amounts.supply_amount, 129_000)
        self.assertEqual(amounts.vat_amount, 12_900)
        self.assertEqual(amounts.total_amount, 141_900)
        self.assertEqual(amounts.deposit_amount, 28_380)
        self.assertEqual(amounts.balance_amount, 113_520)

    def test_other_boxes_bill_at_flat_rate(self):
        amounts = calculate_closing(0, 0, 3, 1200)
        self.assertEqual(amounts.etc_amount, 5_400)
        self.assertEqual(amounts.supply_amount, 5_400)

    def test_deposit_floors(self):
        amounts = calculate_closing(1, 0, 0, 1003)
        # total 1003 + 100 = 1103; 20% = 220.6
        self.assertEqual(amounts.total_amount, 1103)
        self.assertEqual(amounts.deposit_amount, 220)
        self.assertEqual(amounts.deposit_amount + amounts.balance_amount, amounts.total_amount)

    def test_negative_counts_are_ignored(self):
        amounts = calculate_closing(-4, None, "x", 1200)
        self.assertEqual(amounts.total_amount, 0)


class CountCorrectionTestCase(unittest.TestCase):
    def test_over_reported_boxes_include_vat(self):
        self.assertEqual(count_correction_amount(105, 100, 1200), 6_600)

    def test_no_excess_means_no_correction(self):
        self.assertEqual(count_correction_amount(100, 100, 1200), 0)
        self.assertEqual(count_correction_amount(90, 100, 1200), 0)


if __name__ == "__main__":
    unittest.main()
