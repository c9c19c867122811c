import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from models import IntervalUnit, MonthDayPolicy
from periods import days_in_month
from schemas import BillOverrideIn, ScheduledBillIn

logger = logging.getLogger(__name__)

MAX_OCCURRENCES = 366


@dataclass(frozen=True)
class BillOccurrence:
    bill_id: Optional[int]
    name: str
    category_id: Optional[int]
    original_date: date
    due_date: date
    amount: Decimal
    is_overridden: bool


def _add_months(
    base: date,
    months: int,
    *,
    desired_day: int,
    policy: MonthDayPolicy,
) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1

    dim = days_in_month(year, month)
    if policy == MonthDayPolicy.skip and desired_day > dim:
        max_skips = 24
        skips = 0
        while desired_day > dim and skips < max_skips:
            total_months += 1
            year = base.year + total_months // 12
            month = total_months % 12 + 1
            dim = days_in_month(year, month)
            skips += 1

        if skips >= max_skips:
            raise ValueError(
                f"Cannot find suitable month for day {desired_day} after {max_skips} attempts"
            )

    return date(year, month, min(desired_day, dim))


def calculate_next_date(bill: ScheduledBillIn, from_date: date) -> date:
    if bill.interval_unit == IntervalUnit.day:
        return from_date + timedelta(days=bill.interval_count)
    if bill.interval_unit == IntervalUnit.week:
        return from_date + timedelta(weeks=bill.interval_count)
    anchor_day = (
        from_date.day
        if bill.month_day_policy == MonthDayPolicy.carry_forward
        else bill.next_due_date.day
    )
    months = bill.interval_count
    if bill.interval_unit == IntervalUnit.year:
        months *= 12
    return _add_months(
        from_date, months, desired_day=anchor_day, policy=bill.month_day_policy
    )


def scheduled_dates(bill: ScheduledBillIn, *, until: date) -> list[date]:
    """Original (pre-override) due dates from ``next_due_date`` up to ``until``."""
    dates: list[date] = []
    current = bill.next_due_date
    while current <= until and len(dates) < MAX_OCCURRENCES:
        if bill.end_date and current > bill.end_date:
            break
        dates.append(current)
        following = calculate_next_date(bill, current)
        if following <= current:
            break
        current = following
    if len(dates) >= MAX_OCCURRENCES:
        logger.warning(
            f"bill_expansion_truncated: bill={bill.id} occurrences={len(dates)}"
        )
    return dates


def resolve_occurrences(bill: ScheduledBillIn, *, until: date) -> list[BillOccurrence]:
    """Expand a bill up to ``until`` with per-occurrence overrides applied.

    Skipped occurrences are dropped. Dates may move past ``until`` through an
    override; callers filter on the effective ``due_date``. Occurrences
    originally due after ``until`` are included only when an override moves
    them on or before it.
    """
    if not bill.is_active:
        return []
    overrides: dict[date, BillOverrideIn] = {o.original_date: o for o in bill.overrides}
    pulled_in = {
        o.original_date
        for o in bill.overrides
        if o.override_date is not None and o.override_date <= until < o.original_date
    }
    horizon = max(pulled_in, default=until)
    occurrences: list[BillOccurrence] = []
    for original in scheduled_dates(bill, until=horizon):
        if original > until and original not in pulled_in:
            continue
        override = overrides.get(original)
        if override is None:
            occurrences.append(
                BillOccurrence(
                    bill_id=bill.id,
                    name=bill.name,
                    category_id=bill.category_id,
                    original_date=original,
                    due_date=original,
                    amount=bill.amount,
                    is_overridden=False,
                )
            )
            continue
        if override.is_skipped:
            continue
        occurrences.append(
            BillOccurrence(
                bill_id=bill.id,
                name=bill.name,
                category_id=bill.category_id,
                original_date=original,
                due_date=override.override_date or original,
                amount=bill.amount if override.amount is None else override.amount,
                is_overridden=True,
            )
        )
    return occurrences
