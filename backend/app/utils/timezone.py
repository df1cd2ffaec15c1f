from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

KST = timezone(timedelta(hours=9), name="KST")


def utc_now() -> datetime:
    """Naive UTC timestamp, matching the ``DateTime`` columns."""
    return datetime.utcnow()


def kst_today(now: datetime | None = None) -> date:
    """Calendar day in Korea for ``now`` (naive UTC or aware), independent of the host zone."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(KST).date()


def kst_period(now: datetime | None = None) -> str:
    return kst_today(now).strftime("%Y-%m")


def previous_kst_period(now: datetime | None = None) -> str:
    first = kst_today(now).replace(day=1)
    return (first - timedelta(days=1)).strftime("%Y-%m")


def kst_month_bounds_utc(period: str) -> tuple[datetime, datetime]:
    """Naive UTC ``[start, end)`` of a ``YYYY-MM`` month in KST.

    Raises ``ValueError`` for a malformed period.
    """
    start_local = datetime.strptime(period, "%Y-%m").replace(tzinfo=KST)
    if start_local.month == 12:
        end_local = start_local.replace(year=start_local.year + 1, month=1)
    else:
        end_local = start_local.replace(month=start_local.month + 1)
    start = start_local.astimezone(timezone.utc).replace(tzinfo=None)
    end = end_local.astimezone(timezone.utc).replace(tzinfo=None)
    return start, end
