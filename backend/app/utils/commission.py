from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

VAT_RATE_PERCENT = 10
DEFAULT_COMMISSION_RATE = 10


def _to_decimal(value) -> Decimal:
    try:
        parsed = Decimal(str(value if value is not None else 0))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")
    if not parsed.is_finite():
        return Decimal("0")
    return parsed


def _clamp_won(value) -> int:
    parsed = _to_decimal(value)
    return int(parsed) if parsed > 0 else 0


def _clamp_rate(rate) -> Decimal:
    parsed = _to_decimal(rate)
    if parsed < 0:
        return Decimal("0")
    if parsed > 100:
        return Decimal("100")
    return parsed


def round_half_up(value) -> int:
    return int(_to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount, rate) -> int:
    """Half-up rounded ``amount * rate / 100`` in whole won."""
    return round_half_up(Decimal(_clamp_won(amount)) * _clamp_rate(rate) / Decimal("100"))


def calculate_vat(supply_amount) -> int:
    return percent_of(supply_amount, VAT_RATE_PERCENT)


@dataclass(frozen=True)
class CommissionSplit:
    total: int
    commission_rate: Decimal
    team_rate: Decimal
    platform_gross: int
    team_amount: int
    platform_net: int
    deductions: int
    helper_payout: int
    warning: str | None = None

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "commission_rate": float(self.commission_rate),
            "team_rate": float(self.team_rate),
            "platform_gross": self.platform_gross,
            "team_amount": self.team_amount,
            "platform_net": self.platform_net,
            "deductions": self.deductions,
            "helper_payout": self.helper_payout,
            "warning": self.warning,
        }


def split_commission(total, commission_rate, team_rate=0, deductions=0) -> CommissionSplit:
    """Split an order or statement total between platform, team leader and helper.

    The team incentive is carved out of the platform commission, never added on
    top, so ``platform_net + team_amount == platform_gross`` always holds.
    A negative helper payout is clamped to zero and reported in ``warning``.
    """
    total_won = _clamp_won(total)
    rate = _clamp_rate(commission_rate)
    t_rate = _clamp_rate(team_rate)
    deduction_won = _clamp_won(deductions)

    platform_gross = percent_of(total_won, rate)
    team_amount = min(percent_of(total_won, t_rate), platform_gross)
    platform_net = platform_gross - team_amount

    payout = total_won - platform_gross - deduction_won
    warning = None
    if payout < 0:
        warning = f"negative_payout_clamped: computed {payout}"
        payout = 0

    return CommissionSplit(
        total=total_won,
        commission_rate=rate,
        team_rate=t_rate,
        platform_gross=platform_gross,
        team_amount=team_amount,
        platform_net=platform_net,
        deductions=deduction_won,
        helper_payout=payout,
        warning=warning,
    )


def commission_rate_for(setting, is_urgent: bool) -> int:
    """Pick the urgent or regular commission rate from a courier setting.

    ``setting`` is a ``CourierSetting`` row or anything with the same
    attributes; ``None`` falls back to the platform default.
    """
    if setting is None:
        return DEFAULT_COMMISSION_RATE
    if is_urgent:
        urgent = getattr(setting, "urgent_commission_rate", None)
        if urgent is not None:
            return int(_clamp_rate(urgent))
    return int(_clamp_rate(getattr(setting, "commission_rate", DEFAULT_COMMISSION_RATE)))
