from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import InvalidBudgetTypeError
from models import BudgetType
from policy import DEFAULT_PAY_PERIOD_DAYS
from schemas import BudgetIn


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, target: date) -> bool:
        return self.start <= target <= self.end

    @property
    def total_days(self) -> int:
        return (self.end - self.start).days + 1


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def coerce_budget_type(value: object) -> BudgetType:
    if isinstance(value, BudgetType):
        return value
    if isinstance(value, str):
        try:
            return BudgetType(value.upper())
        except ValueError:
            pass
    raise InvalidBudgetTypeError(value)


def resolve_period(
    budget_type: object,
    anchor: date,
    *,
    reference: Optional[date] = None,
    pay_period_days: Optional[int] = None,
    fiscal_year_start: int = 1,
    budget_end: Optional[date] = None,
) -> Period:
    """Return the inclusive window of the given budget type containing ``reference``."""
    kind = coerce_budget_type(budget_type)
    reference = reference or local_today()

    if kind == BudgetType.monthly:
        start = reference.replace(day=1)
        end = start.replace(day=days_in_month(start.year, start.month))
        slug = f"{start:%Y-%m}"
    elif kind == BudgetType.annual:
        if not 1 <= fiscal_year_start <= 12:
            raise ValueError("fiscal_year_start must be between 1 and 12")
        year = reference.year if reference.month >= fiscal_year_start else reference.year - 1
        start = date(year, fiscal_year_start, 1)
        end = date(year + 1, fiscal_year_start, 1) - date.resolution
        slug = f"FY{year}" if fiscal_year_start != 1 else str(year)
    else:
        cadence = pay_period_days or DEFAULT_PAY_PERIOD_DAYS
        if cadence <= 0:
            raise ValueError("Pay period cadence must be positive")
        offset = (reference - anchor).days // cadence
        start = anchor + timedelta(days=offset * cadence)
        end = start + timedelta(days=cadence - 1)
        slug = f"pp-{start.isoformat()}"

    if budget_end and start <= budget_end < end:
        end = budget_end
    return Period(slug, start, end)


def period_for_budget(budget: BudgetIn, reference: Optional[date] = None) -> Period:
    pay_period_days = budget.config.pay_period_days
    if pay_period_days is None and budget.budget_type == BudgetType.pay_period:
        pay_period_days = get_settings().pay_period_days
    return resolve_period(
        budget.budget_type,
        budget.period_start,
        reference=reference,
        pay_period_days=pay_period_days,
        fiscal_year_start=budget.config.fiscal_year_start,
        budget_end=budget.period_end,
    )


def next_period(budget: BudgetIn, period: Period) -> Optional[Period]:
    """The window after ``period``, or None once the budget has ended."""
    if budget.period_end is not None and period.end >= budget.period_end:
        return None
    following = period_for_budget(budget, period.end + date.resolution)
    if following.start <= period.end:
        return None
    return following


def previous_period(budget: BudgetIn, period: Period) -> Period:
    return period_for_budget(budget, period.start - date.resolution)


def elapsed_days(period: Period, today: date) -> tuple[int, int]:
    """Return (days_elapsed, total_days); today counts as elapsed."""
    total = period.total_days
    elapsed = (today - period.start).days + 1
    return max(0, min(elapsed, total)), total
