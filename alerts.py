"""Alert threshold crossings.

Only the crossings are computed here. Delivery belongs to whoever consumes
them.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Sequence

from money import percent_of
from policy import OVER_BUDGET_PERCENT, PROJECTED_OVERSPEND_PERCENT
from schemas import BudgetCategoryIn

if TYPE_CHECKING:
    from breakdown import CategoryBreakdown


class AlertLevel(str, Enum):
    warning = "warning"
    critical = "critical"
    over_budget = "over_budget"
    projected_overspend = "projected_overspend"


@dataclass(frozen=True)
class AlertCrossing:
    budget_category_id: int
    category_name: str
    level: AlertLevel
    percent_used: Decimal
    threshold: int


def threshold_crossings(
    categories: Sequence[BudgetCategoryIn], breakdowns: Sequence["CategoryBreakdown"]
) -> list[AlertCrossing]:
    """The most severe crossing per expense category, if any."""
    by_id = {c.id: c for c in categories}
    crossings: list[AlertCrossing] = []
    for item in breakdowns:
        category = by_id.get(item.budget_category_id)
        if category is None or item.is_income or item.budgeted <= 0:
            continue
        percent = item.percent_used
        if percent <= 0:
            continue
        if percent >= OVER_BUDGET_PERCENT:
            level, threshold = AlertLevel.over_budget, OVER_BUDGET_PERCENT
        elif percent >= category.alert_critical_percent:
            level, threshold = AlertLevel.critical, category.alert_critical_percent
        elif percent >= category.alert_warn_percent:
            level, threshold = AlertLevel.warning, category.alert_warn_percent
        else:
            continue
        crossings.append(
            AlertCrossing(item.budget_category_id, item.category_name, level, percent, threshold)
        )
    return crossings


def projected_overspend(
    breakdowns: Sequence["CategoryBreakdown"], days_elapsed: int, total_days: int
) -> list[AlertCrossing]:
    """Categories still under budget whose linear projection passes 110%."""
    if days_elapsed <= 0 or total_days <= 0:
        return []
    crossings: list[AlertCrossing] = []
    for item in breakdowns:
        if item.is_income or item.budgeted <= 0 or item.percent_used >= OVER_BUDGET_PERCENT:
            continue
        projected = item.spent / days_elapsed * total_days
        projected_percent = percent_of(projected, item.budgeted)
        if projected_percent > PROJECTED_OVERSPEND_PERCENT:
            crossings.append(
                AlertCrossing(
                    item.budget_category_id,
                    item.category_name,
                    AlertLevel.projected_overspend,
                    projected_percent,
                    PROJECTED_OVERSPEND_PERCENT,
                )
            )
    return crossings
