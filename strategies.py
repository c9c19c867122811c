"""Strategy-specific views over a budget's breakdowns.

``evaluate_strategy`` is the only place that branches on a budget's strategy.
Every ``BudgetStrategy`` member must have an evaluator registered in
``_EVALUATORS``; a missing one fails at import time.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Sequence, Union

from models import BudgetStrategy, CategoryGroup
from money import ZERO, describe_balance, percent_of, round_money, whole_percent_of
from policy import (
    FIFTY_THIRTY_TWENTY_TARGETS,
    GROUP_CAUTION_POINTS,
    GROUP_ON_TARGET_POINTS,
    ZERO_BASED_TOLERANCE_RATIO,
)
from schemas import BudgetCategoryIn, BudgetIn

if TYPE_CHECKING:
    from breakdown import CategoryBreakdown


class GroupStatus(str, Enum):
    on_target = "on_target"
    caution = "caution"
    off_target = "off_target"


@dataclass(frozen=True)
class ZeroBasedStatus:
    total_income: Decimal
    total_budgeted: Decimal
    unassigned: Decimal
    tolerance: Decimal
    is_fully_assigned: bool
    is_over_assigned: bool
    label: str

    @property
    def is_under_assigned(self) -> bool:
        return not self.is_fully_assigned and not self.is_over_assigned


def evaluate_zero_based(
    total_income: Decimal, total_budgeted: Decimal, *, currency_code: str = "USD"
) -> ZeroBasedStatus:
    unassigned = total_income - total_budgeted
    tolerance = total_income * ZERO_BASED_TOLERANCE_RATIO if total_income > 0 else ZERO
    fully = abs(unassigned) <= tolerance
    over = unassigned < -tolerance
    if fully:
        label = "Fully assigned"
    else:
        label = describe_balance(unassigned, currency_code, positive="unassigned")
    return ZeroBasedStatus(
        total_income=total_income,
        total_budgeted=total_budgeted,
        unassigned=unassigned,
        tolerance=tolerance,
        is_fully_assigned=fully,
        is_over_assigned=over,
        label=label,
    )


@dataclass(frozen=True)
class GroupTarget:
    group: CategoryGroup
    target_percent: int
    actual_percent: int
    budgeted_percent: int
    spent: Decimal
    budgeted: Decimal
    status: GroupStatus


@dataclass(frozen=True)
class FiftyThirtyTwentySummary:
    total_income: Decimal
    groups: tuple[GroupTarget, ...]

    def group(self, group: CategoryGroup) -> GroupTarget:
        for target in self.groups:
            if target.group == group:
                return target
        raise KeyError(group)

    @property
    def total_actual_percent(self) -> int:
        return sum(g.actual_percent for g in self.groups)


def _group_status(actual_percent: int, target: int) -> GroupStatus:
    gap = abs(actual_percent - target)
    if gap <= GROUP_ON_TARGET_POINTS:
        return GroupStatus.on_target
    if gap <= GROUP_CAUTION_POINTS:
        return GroupStatus.caution
    return GroupStatus.off_target


def evaluate_fifty_thirty_twenty(
    categories: Sequence[BudgetCategoryIn],
    breakdowns: Sequence["CategoryBreakdown"],
    total_income: Decimal,
) -> Optional[FiftyThirtyTwentySummary]:
    """Group totals against the 50/30/20 targets; None when there is no income."""
    if total_income <= 0:
        return None
    groups_by_id = {
        c.id: c.category_group
        for c in categories
        if not c.is_income and c.category_group is not None
    }
    spent = {group: ZERO for group in CategoryGroup}
    budgeted = {group: ZERO for group in CategoryGroup}
    for item in breakdowns:
        group = groups_by_id.get(item.budget_category_id)
        if group is None:
            continue
        spent[group] += item.spent
        budgeted[group] += item.budgeted

    targets = []
    for group in CategoryGroup:
        target = FIFTY_THIRTY_TWENTY_TARGETS[group.value]
        actual_percent = whole_percent_of(spent[group], total_income)
        targets.append(
            GroupTarget(
                group=group,
                target_percent=target,
                actual_percent=actual_percent,
                budgeted_percent=whole_percent_of(budgeted[group], total_income),
                spent=spent[group],
                budgeted=budgeted[group],
                status=_group_status(actual_percent, target),
            )
        )
    return FiftyThirtyTwentySummary(total_income=total_income, groups=tuple(targets))


@dataclass(frozen=True)
class FlexGroupStatus:
    name: str
    total_budgeted: Decimal
    total_spent: Decimal
    remaining: Decimal
    percent_used: Decimal
    budget_category_ids: tuple[int, ...]


def flex_group_status(
    categories: Sequence[BudgetCategoryIn], breakdowns: Sequence["CategoryBreakdown"]
) -> list[FlexGroupStatus]:
    pools = {c.id: c.pool for c in categories if c.pool is not None}
    members: dict[str, list["CategoryBreakdown"]] = {}
    for item in breakdowns:
        pool = pools.get(item.budget_category_id)
        if pool is not None:
            members.setdefault(pool, []).append(item)

    groups = []
    for name, items in members.items():
        budgeted = sum((i.budgeted for i in items), ZERO)
        spent = sum((i.spent for i in items), ZERO)
        groups.append(
            FlexGroupStatus(
                name=name,
                total_budgeted=round_money(budgeted),
                total_spent=round_money(spent),
                remaining=round_money(budgeted - spent),
                percent_used=percent_of(spent, budgeted),
                budget_category_ids=tuple(i.budget_category_id for i in items),
            )
        )
    return sorted(groups, key=lambda g: g.percent_used, reverse=True)


@dataclass(frozen=True)
class FixedEvaluation:
    flex_groups: tuple[FlexGroupStatus, ...]
    strategy: BudgetStrategy = BudgetStrategy.fixed


@dataclass(frozen=True)
class RolloverEvaluation:
    flex_groups: tuple[FlexGroupStatus, ...]
    total_rollover_in: Decimal
    strategy: BudgetStrategy = BudgetStrategy.rollover


@dataclass(frozen=True)
class ZeroBasedEvaluation:
    flex_groups: tuple[FlexGroupStatus, ...]
    status: ZeroBasedStatus
    strategy: BudgetStrategy = BudgetStrategy.zero_based


@dataclass(frozen=True)
class FiftyThirtyTwentyEvaluation:
    flex_groups: tuple[FlexGroupStatus, ...]
    summary: Optional[FiftyThirtyTwentySummary]
    strategy: BudgetStrategy = BudgetStrategy.fifty_thirty_twenty


StrategyEvaluation = Union[
    FixedEvaluation, RolloverEvaluation, ZeroBasedEvaluation, FiftyThirtyTwentyEvaluation
]


def _expense_total(breakdowns: Sequence["CategoryBreakdown"]) -> Decimal:
    return sum((b.budgeted for b in breakdowns if not b.is_income), ZERO)


def _fixed(budget, categories, breakdowns, total_income, flex):
    return FixedEvaluation(flex_groups=flex)


def _rollover(budget, categories, breakdowns, total_income, flex):
    carried = sum((b.rollover_in for b in breakdowns if not b.is_income), ZERO)
    return RolloverEvaluation(flex_groups=flex, total_rollover_in=carried)


def _zero_based(budget, categories, breakdowns, total_income, flex):
    status = evaluate_zero_based(
        total_income, _expense_total(breakdowns), currency_code=budget.currency_code
    )
    return ZeroBasedEvaluation(flex_groups=flex, status=status)


def _fifty_thirty_twenty(budget, categories, breakdowns, total_income, flex):
    summary = evaluate_fifty_thirty_twenty(categories, breakdowns, total_income)
    return FiftyThirtyTwentyEvaluation(flex_groups=flex, summary=summary)


_EVALUATORS: dict[BudgetStrategy, Callable[..., StrategyEvaluation]] = {
    BudgetStrategy.fixed: _fixed,
    BudgetStrategy.rollover: _rollover,
    BudgetStrategy.zero_based: _zero_based,
    BudgetStrategy.fifty_thirty_twenty: _fifty_thirty_twenty,
}

_missing = set(BudgetStrategy) - set(_EVALUATORS)
if _missing:
    raise RuntimeError(f"No evaluator registered for strategies: {sorted(s.value for s in _missing)}")


def evaluate_strategy(
    budget: BudgetIn,
    categories: Sequence[BudgetCategoryIn],
    breakdowns: Sequence["CategoryBreakdown"],
    total_income: Decimal,
) -> StrategyEvaluation:
    flex = tuple(flex_group_status(categories, breakdowns))
    evaluator = _EVALUATORS[BudgetStrategy(budget.strategy)]
    return evaluator(budget, categories, breakdowns, total_income, flex)
