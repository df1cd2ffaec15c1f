from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR

from app.utils.commission import calculate_vat

ETC_PRICE_PER_UNIT = 1800
DEPOSIT_RATE_PERCENT = 20


def _count(value) -> int:
    try:
        parsed = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return parsed if parsed > 0 else 0


@dataclass(frozen=True)
class ClosingAmounts:
    billable_count: int
    delivery_return_amount: int
    etc_amount: int
    extra_costs: int
    supply_amount: int
    vat_amount: int
    total_amount: int
    deposit_amount: int
    balance_amount: int

    def to_dict(self) -> dict:
        return {
            "billableCount": self.billable_count,
            "deliveryReturnAmount": self.delivery_return_amount,
            "etcAmount": self.etc_amount,
            "extraCosts": self.extra_costs,
            "supplyAmount": self.supply_amount,
            "vatAmount": self.vat_amount,
            "totalAmount": self.total_amount,
            "depositAmount": self.deposit_amount,
            "balanceAmount": self.balance_amount,
        }


def calculate_closing(
    delivered_count,
    returned_count,
    other_count,
    unit_price,
    extra_costs=0,
    *,
    etc_price_per_unit: int = ETC_PRICE_PER_UNIT,
) -> ClosingAmounts:
    """Amounts billed for a closing report.

    Delivered and returned boxes bill at the order's unit price, other boxes
    at a flat rate; VAT is 10% half-up; the requester's deposit is the floor
    of 20% of the total and the remainder is the balance due.
    """
    billable = _count(delivered_count) + _count(returned_count)
    delivery_return = billable * _count(unit_price)
    etc_amount = _count(other_count) * _count(etc_price_per_unit)
    extras = _count(extra_costs)
    supply = delivery_return + etc_amount + extras
    vat = calculate_vat(supply)
    total = supply + vat
    deposit = int((Decimal(total) * DEPOSIT_RATE_PERCENT / Decimal("100")).to_integral_value(rounding=ROUND_FLOOR))
    return ClosingAmounts(
        billable_count=billable,
        delivery_return_amount=delivery_return,
        etc_amount=etc_amount,
        extra_costs=extras,
        supply_amount=supply,
        vat_amount=vat,
        total_amount=total,
        deposit_amount=deposit,
        balance_amount=total - deposit,
    )


def count_correction_amount(reported_billable, requested_billable, unit_price) -> int:
    """Over-billed boxes times unit price, plus VAT. Zero when nothing was over-reported."""
    excess = _count(reported_billable) - _count(requested_billable)
    if excess <= 0:
        return 0
    supply = excess * _count(unit_price)
    return supply + calculate_vat(supply)
