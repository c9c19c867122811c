"""Read-only breakdowns consumed by dashboards.

Nothing here is persisted. Breakdowns are rebuilt from period-category
records and the ledger on every read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

import strategies
from aggregation import actual_income as sum_actual_income
from aggregation import aggregate_spending
from errors import InconsistentCategoryReferenceError
from models import BudgetStrategy, CategoryGroup
from money import HUNDRED, ZERO, percent_of, round_money, to_decimal
from periods import Period
from schemas import BudgetCategoryIn, BudgetIn, LedgerTransactionIn
from settlement import PeriodCategoryRecord, effective_budget, index_categories


@dataclass(frozen=True)
class CategoryBreakdown:
    budget_category_id: int
    category_id: Optional[int]
    category_name: str
    budgeted: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: Decimal
    is_income: bool = False
    is_transfer: bool = False
    percentage: Optional[Decimal] = None
    rollover_in: Decimal = ZERO
    flex_group: Optional[str] = None
    category_group: Optional[CategoryGroup] = None


@dataclass(frozen=True)
class BudgetSummary:
    budget_id: int
    name: str
    strategy: BudgetStrategy
    currency_code: str
    period: Period
    categories: list[CategoryBreakdown]
    total_budgeted: Decimal
    total_spent: Decimal
    total_income: Decimal
    actual_income: Decimal
    remaining: Decimal
    percent_used: Decimal
    evaluation: Optional["strategies.StrategyEvaluation"] = field(default=None, compare=False)

    @property
    def expenses(self) -> list[CategoryBreakdown]:
        return [b for b in self.categories if not b.is_income]

    def top_categories(self, n: int = 3) -> list[CategoryBreakdown]:
        return sorted(self.expenses, key=lambda b: b.percent_used, reverse=True)[:n]


def resolve_total_income(budget: BudgetIn, actual_income: Decimal) -> Decimal:
    if budget.income_linked:
        return actual_income
    if budget.base_income is not None:
        return budget.base_income
    return actual_income


def _linked_amount(budget: BudgetIn, category: BudgetCategoryIn, amount: Decimal, income: Decimal):
    if not budget.income_linked or category.is_income:
        return amount, None
    return round_money(income * amount / HUNDRED), amount


def _sorted(categories: Sequence[BudgetCategoryIn]) -> list[BudgetCategoryIn]:
    return sorted(categories, key=lambda c: (c.sort_order, c.id))


def assemble_breakdowns(
    budget: BudgetIn,
    categories: Sequence[BudgetCategoryIn],
    actuals: Mapping[int, Decimal],
    *,
    period_categories: Optional[Iterable[PeriodCategoryRecord]] = None,
    category_names: Optional[Mapping[int, str]] = None,
    actual_income: Optional[Decimal] = None,
) -> list[CategoryBreakdown]:
    """One breakdown per category, in display order.

    With ``period_categories`` the stored effective budget and rollover are
    used, and a stored actual stands in for categories missing from
    ``actuals``.
    """
    by_id = index_categories(budget, categories)
    records: dict[int, PeriodCategoryRecord] = {}
    for record in period_categories or ():
        if record.budget_category_id not in by_id or record.budget_id != budget.id:
            raise InconsistentCategoryReferenceError(record.budget_category_id, budget.id)
        records[record.budget_category_id] = record

    names = category_names or {}
    if actual_income is None:
        actual_income = sum_actual_income(categories, actuals)

    breakdowns: list[CategoryBreakdown] = []
    for category in _sorted(categories):
        record = records.get(category.id)
        rollover_in = record.rollover_in if record else ZERO
        base = record.budgeted_amount if record else category.amount
        base, percentage = _linked_amount(budget, category, base, actual_income)
        if record is not None and percentage is None:
            budgeted = record.effective_budget
        else:
            budgeted = effective_budget(base, rollover_in, category.rollover_cap)

        if category.id in actuals:
            spent = to_decimal(actuals[category.id])
        elif record is not None:
            spent = record.actual_amount
        else:
            spent = ZERO

        name = category.name
        if not name and category.category_id is not None:
            name = names.get(category.category_id)
        breakdowns.append(
            CategoryBreakdown(
                budget_category_id=category.id,
                category_id=category.category_id,
                category_name=name or category.display_name,
                budgeted=round_money(budgeted),
                spent=round_money(spent),
                remaining=round_money(budgeted - spent),
                percent_used=max(percent_of(spent, budgeted), ZERO),
                is_income=category.is_income,
                is_transfer=category.is_transfer,
                percentage=percentage,
                rollover_in=rollover_in,
                flex_group=category.pool,
                category_group=category.category_group,
            )
        )
    return breakdowns


def summarize_budget(
    budget: BudgetIn,
    categories: Sequence[BudgetCategoryIn],
    transactions: Iterable[LedgerTransactionIn],
    *,
    period: Period,
    period_categories: Optional[Iterable[PeriodCategoryRecord]] = None,
    category_names: Optional[Mapping[int, str]] = None,
) -> BudgetSummary:
    actuals = aggregate_spending(
        period,
        transactions,
        categories,
        excluded_account_ids=budget.config.excluded_account_ids,
    )
    income = sum_actual_income(categories, actuals)
    breakdowns = assemble_breakdowns(
        budget,
        categories,
        actuals,
        period_categories=period_categories,
        category_names=category_names,
        actual_income=income,
    )
    total_income = resolve_total_income(budget, income)
    expenses = [b for b in breakdowns if not b.is_income]
    total_budgeted = sum((b.budgeted for b in expenses), ZERO)
    total_spent = sum((b.spent for b in expenses), ZERO)
    return BudgetSummary(
        budget_id=budget.id,
        name=budget.name,
        strategy=budget.strategy,
        currency_code=budget.currency_code,
        period=period,
        categories=breakdowns,
        total_budgeted=total_budgeted,
        total_spent=total_spent,
        total_income=total_income,
        actual_income=income,
        remaining=total_budgeted - total_spent,
        percent_used=percent_of(total_spent, total_budgeted),
        evaluation=strategies.evaluate_strategy(budget, categories, breakdowns, total_income),
    )
