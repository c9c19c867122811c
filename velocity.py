from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from models import PaceStatus
from money import ZERO, describe_balance, round_money, to_decimal
from periods import Period, elapsed_days
from policy import PACE_TOLERANCE_RATIO
from recurrence import resolve_occurrences
from schemas import ScheduledBillIn

if TYPE_CHECKING:
    from breakdown import BudgetSummary


@dataclass(frozen=True)
class UpcomingBill:
    bill_id: Optional[int]
    name: str
    due_date: date
    amount: Decimal
    category_id: Optional[int] = None
    is_overridden: bool = False


@dataclass(frozen=True)
class BudgetVelocity:
    daily_burn_rate: Decimal
    projected_total: Decimal
    budget_total: Decimal
    projected_variance: Decimal
    safe_daily_spend: Decimal
    days_elapsed: int
    days_remaining: int
    total_days: int
    pace_status: PaceStatus
    upcoming_bills: tuple[UpcomingBill, ...]
    total_upcoming_bills: Decimal
    truly_available: Decimal
    truly_available_label: str


def resolve_upcoming_bills(
    bills: Iterable[ScheduledBillIn], *, today: date, period_end: date
) -> list[UpcomingBill]:
    """Outflow occurrences still due in ``[today, period_end]``, earliest first.

    Amounts are override-resolved and reported as positive magnitudes.
    Occurrences whose effective amount is not negative are dropped.
    """
    upcoming: list[UpcomingBill] = []
    for bill in bills:
        for occurrence in resolve_occurrences(bill, until=period_end):
            if occurrence.amount >= 0:
                continue
            if not today <= occurrence.due_date <= period_end:
                continue
            upcoming.append(
                UpcomingBill(
                    bill_id=occurrence.bill_id,
                    name=occurrence.name,
                    due_date=occurrence.due_date,
                    amount=abs(occurrence.amount),
                    category_id=occurrence.category_id,
                    is_overridden=occurrence.is_overridden,
                )
            )
    return sorted(upcoming, key=lambda b: b.due_date)


def classify_pace(projected_variance: Decimal, total_budgeted: Decimal) -> PaceStatus:
    tolerance = abs(to_decimal(total_budgeted)) * PACE_TOLERANCE_RATIO
    if projected_variance < -tolerance:
        return PaceStatus.under
    if projected_variance > tolerance:
        return PaceStatus.over
    return PaceStatus.on_track


def compute_velocity(
    total_budgeted: Decimal,
    current_spent: Decimal,
    days_elapsed: int,
    total_days: int,
    upcoming_bills: Sequence[UpcomingBill] = (),
    *,
    currency_code: str = "USD",
) -> BudgetVelocity:
    if days_elapsed < 0 or total_days < 0 or days_elapsed > total_days:
        raise ValueError(
            f"Invalid period progress: {days_elapsed} of {total_days} days elapsed"
        )
    budgeted = to_decimal(total_budgeted)
    spent = to_decimal(current_spent)
    days_remaining = total_days - days_elapsed

    daily = spent / days_elapsed if days_elapsed > 0 else ZERO
    projected = daily * total_days
    variance = projected - budgeted
    if days_remaining > 0:
        safe_daily = max(budgeted - spent, ZERO) / days_remaining
    else:
        safe_daily = ZERO

    bills_total = sum((b.amount for b in upcoming_bills), ZERO)
    truly_available = round_money(budgeted - spent - bills_total)
    return BudgetVelocity(
        daily_burn_rate=round_money(daily),
        projected_total=round_money(projected),
        budget_total=round_money(budgeted),
        projected_variance=round_money(variance),
        safe_daily_spend=round_money(safe_daily),
        days_elapsed=days_elapsed,
        days_remaining=days_remaining,
        total_days=total_days,
        pace_status=classify_pace(variance, budgeted),
        upcoming_bills=tuple(upcoming_bills),
        total_upcoming_bills=round_money(bills_total),
        truly_available=truly_available,
        truly_available_label=describe_balance(truly_available, currency_code),
    )


def velocity_for_period(
    summary: "BudgetSummary",
    period: Period,
    bills: Iterable[ScheduledBillIn],
    *,
    today: date,
) -> BudgetVelocity:
    elapsed, total = elapsed_days(period, today)
    upcoming = resolve_upcoming_bills(bills, today=today, period_end=period.end)
    return compute_velocity(
        summary.total_budgeted,
        summary.total_spent,
        elapsed,
        total,
        upcoming,
        currency_code=summary.currency_code,
    )
