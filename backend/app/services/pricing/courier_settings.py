from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from app.models.courier_setting import (
    CourierSetting,
    DEFAULT_BASE_PRICE_PER_BOX,
    DEFAULT_COMMISSION_RATE,
    DEFAULT_MIN_TOTAL,
    DEFAULT_URGENT_COMMISSION_RATE,
    DEFAULT_URGENT_SURCHARGE_RATE,
)


@dataclass(frozen=True)
class CourierSettingValues:
    base_price_per_box: int = DEFAULT_BASE_PRICE_PER_BOX
    min_total: int = DEFAULT_MIN_TOTAL
    commission_rate: int = DEFAULT_COMMISSION_RATE
    urgent_commission_rate: int = DEFAULT_URGENT_COMMISSION_RATE
    urgent_surcharge_rate: int = DEFAULT_URGENT_SURCHARGE_RATE
    courier_name: str | None = None
    category: str = ""
    setting_id: int | None = None

    @classmethod
    def from_row(cls, row) -> "CourierSettingValues":
        return cls(
            base_price_per_box=int(row.base_price_per_box or 0),
            min_total=int(row.min_total or 0),
            commission_rate=int(row.commission_rate or 0),
            urgent_commission_rate=int(row.urgent_commission_rate or 0),
            urgent_surcharge_rate=int(row.urgent_surcharge_rate or 0),
            courier_name=row.courier_name,
            category=row.category or "",
            setting_id=getattr(row, "id", None),
        )


BUILT_IN_DEFAULTS = CourierSettingValues()


class CourierSettingRepository(Protocol):
    def find(self, company_name: str | None, category: str | None) -> CourierSettingValues:
        ...


def _norm(value: str | None) -> str:
    return (value or "").strip()


def _choose(rows: Iterable, company_name: str | None, category: str | None) -> CourierSettingValues:
    name = _norm(company_name).lower()
    cat = _norm(category).lower()
    default_row = None
    for row in rows:
        if not getattr(row, "is_active", True):
            continue
        if _norm(row.category).lower() != cat:
            continue
        row_name = _norm(row.courier_name).lower()
        if name and row_name == name:
            return CourierSettingValues.from_row(row)
        if not row_name and default_row is None:
            default_row = row
    if default_row is not None:
        return CourierSettingValues.from_row(default_row)
    return BUILT_IN_DEFAULTS


class SqlCourierSettingRepository:
    """Courier-specific row, else the category default row, else built-in defaults.

    Reads the table on every call so admin edits apply to the next quote.
    """

    def find(self, company_name: str | None, category: str | None) -> CourierSettingValues:
        rows = (
            CourierSetting.query
            .filter(CourierSetting.is_active.is_(True))
            .order_by(CourierSetting.id.asc())
            .all()
        )
        return _choose(rows, company_name, category)


class StaticCourierSettingRepository:
    def __init__(self, rows: Iterable = ()):
        self.rows = list(rows)

    def find(self, company_name: str | None, category: str | None) -> CourierSettingValues:
        return _choose(self.rows, company_name, category)
