from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_HALF_UP

from app.services.pricing.courier_settings import CourierSettingRepository, CourierSettingValues


def _to_decimal(value) -> Decimal:
    try:
        parsed = Decimal(str(value if value is not None else 0))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")
    if not parsed.is_finite() or parsed < 0:
        return Decimal("0")
    return parsed


def _ceil(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_CEILING))


def _won(amount: int) -> str:
    return f"{int(amount):,}원"


def round_to_hundred(value) -> int:
    """Round a manually entered amount to the nearest 100 won, halves up."""
    hundreds = (_to_decimal(value) / Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(hundreds) * 100


@dataclass(frozen=True)
class PriceQuote:
    final_price_per_box: int
    min_applied: bool
    urgent_applied: bool
    explanation: str
    base_price: int
    after_urgent: int
    raw_total: int
    final_total: int

    def to_dict(self) -> dict:
        return {
            "finalPricePerBox": self.final_price_per_box,
            "minApplied": self.min_applied,
            "urgentApplied": self.urgent_applied,
            "explanation": self.explanation,
            "basePrice": self.base_price,
            "afterUrgent": self.after_urgent,
            "rawTotal": self.raw_total,
            "finalTotal": self.final_total,
        }


def compute_price_per_box(
    base_price,
    quantity,
    min_total,
    urgent_surcharge_rate,
    is_urgent: bool,
) -> PriceQuote:
    """Per-box price after the urgent surcharge and the minimum-total floor.

    Pure and total over numbers: negative or non-finite inputs count as 0.
    A zero quantity cannot be priced and returns the base price untouched.
    Otherwise the surcharge is applied first (ceil to the won); the floor then
    raises the unit price to ``ceil(min_total / quantity)`` when the raw total
    falls short.
    """
    base = _to_decimal(base_price)
    qty = int(_to_decimal(quantity))
    floor_total = _to_decimal(min_total)
    rate = _to_decimal(urgent_surcharge_rate)

    base_int = _ceil(base)
    steps = [f"기본 단가 {_won(base_int)}"]
    if qty <= 0:
        return PriceQuote(
            final_price_per_box=base_int,
            min_applied=False,
            urgent_applied=False,
            explanation=" / ".join(steps),
            base_price=base_int,
            after_urgent=base_int,
            raw_total=0,
            final_total=0,
        )

    urgent_applied = bool(is_urgent) and rate > 0
    if urgent_applied:
        after_urgent = _ceil(base * (Decimal("1") + rate / Decimal("100")))
        steps.append(f"긴급 할증 {rate.normalize()}% 적용 → {_won(after_urgent)}")
    else:
        after_urgent = base_int

    raw_total = after_urgent * qty
    final = after_urgent
    min_applied = False
    if floor_total > 0 and Decimal(raw_total) < floor_total:
        required = _ceil(floor_total / Decimal(qty))
        final = max(after_urgent, required)
        min_applied = True
        steps.append(f"최저 운임 {_won(_ceil(floor_total))} 보장 → 박스당 {_won(final)}")

    return PriceQuote(
        final_price_per_box=final,
        min_applied=min_applied,
        urgent_applied=urgent_applied,
        explanation=" / ".join(steps),
        base_price=base_int,
        after_urgent=after_urgent,
        raw_total=raw_total,
        final_total=final * qty,
    )


def quote_for_order(
    repository: CourierSettingRepository,
    company_name: str | None,
    category: str | None,
    quantity,
    is_urgent: bool,
) -> tuple[PriceQuote, CourierSettingValues]:
    setting = repository.find(company_name, category)
    quote = compute_price_per_box(
        setting.base_price_per_box,
        quantity,
        setting.min_total,
        setting.urgent_surcharge_rate,
        is_urgent,
    )
    return quote, setting
