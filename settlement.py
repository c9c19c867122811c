"""Period arena and rollover settlement.

Periods and period-categories live in a flat ``PeriodLedger`` keyed by
``(budget_id, period_start)`` and ``(budget_id, budget_category_id,
period_start)``, so the prior period of any window is a key lookup.

Settlement is pure: it reads a ledger snapshot and returns a
``SettlementResult`` holding the closed period and its successor. The caller
persists the result (see ``services.BudgetPeriodService.close_period``) and
may fold it into a new arena with ``PeriodLedger.apply``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

from errors import (
    InconsistentCategoryReferenceError,
    InvalidPeriodStateError,
    NegativeAllocationError,
    PeriodNotFoundError,
    PriorPeriodNotClosedError,
)
from models import PeriodStatus, RolloverType
from money import ZERO, round_storage, to_decimal
from periods import Period, next_period, previous_period
from schemas import BudgetCategoryIn, BudgetIn

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeriodRecord:
    budget_id: int
    period_start: date
    period_end: date
    status: PeriodStatus = PeriodStatus.open
    total_budgeted: Decimal = ZERO
    actual_income: Decimal = ZERO
    actual_expenses: Decimal = ZERO
    id: Optional[int] = None

    @property
    def window(self) -> Period:
        return Period(self.period_start.isoformat(), self.period_start, self.period_end)


@dataclass(frozen=True)
class PeriodCategoryRecord:
    budget_id: int
    budget_category_id: int
    period_start: date
    budgeted_amount: Decimal
    rollover_in: Decimal
    effective_budget: Decimal
    actual_amount: Decimal = ZERO
    rollover_out: Decimal = ZERO
    category_id: Optional[int] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class SettlementResult:
    period: PeriodRecord
    categories: tuple[PeriodCategoryRecord, ...]
    next_period: Optional[PeriodRecord]
    next_categories: tuple[PeriodCategoryRecord, ...]
    replayed: bool = False

    def rollover_out(self) -> dict[int, Decimal]:
        return {r.budget_category_id: r.rollover_out for r in self.categories}


class PeriodLedger:
    def __init__(
        self,
        periods: Iterable[PeriodRecord] = (),
        categories: Iterable[PeriodCategoryRecord] = (),
    ) -> None:
        self._periods: dict[tuple[int, date], PeriodRecord] = {
            (p.budget_id, p.period_start): p for p in periods
        }
        self._categories: dict[tuple[int, int, date], PeriodCategoryRecord] = {
            (c.budget_id, c.budget_category_id, c.period_start): c for c in categories
        }

    def __len__(self) -> int:
        return len(self._periods)

    def period(self, budget_id: int, period_start: date) -> Optional[PeriodRecord]:
        return self._periods.get((budget_id, period_start))

    def category(
        self, budget_id: int, budget_category_id: int, period_start: date
    ) -> Optional[PeriodCategoryRecord]:
        return self._categories.get((budget_id, budget_category_id, period_start))

    def categories_for(
        self, budget_id: int, period_start: date
    ) -> list[PeriodCategoryRecord]:
        rows = [
            record
            for (b_id, _, start), record in self._categories.items()
            if b_id == budget_id and start == period_start
        ]
        return sorted(rows, key=lambda r: r.budget_category_id)

    def periods_for(self, budget_id: int) -> list[PeriodRecord]:
        rows = [p for (b_id, _), p in self._periods.items() if b_id == budget_id]
        return sorted(rows, key=lambda p: p.period_start)

    def open_period(self, budget_id: int) -> Optional[PeriodRecord]:
        open_rows = [
            p for p in self.periods_for(budget_id) if p.status == PeriodStatus.open
        ]
        return open_rows[0] if open_rows else None

    def with_records(
        self, period: PeriodRecord, categories: Iterable[PeriodCategoryRecord]
    ) -> "PeriodLedger":
        ledger = PeriodLedger()
        ledger._periods = dict(self._periods)
        ledger._categories = dict(self._categories)
        ledger._periods[(period.budget_id, period.period_start)] = period
        for record in categories:
            key = (record.budget_id, record.budget_category_id, record.period_start)
            ledger._categories[key] = record
        return ledger

    def apply(self, result: SettlementResult) -> "PeriodLedger":
        ledger = self.with_records(result.period, result.categories)
        if result.next_period is not None:
            ledger = ledger.with_records(result.next_period, result.next_categories)
        return ledger


def effective_budget(
    budgeted: Decimal, rollover_in: Decimal, cap: Optional[Decimal] = None
) -> Decimal:
    carried = max(to_decimal(rollover_in), ZERO)
    if cap is not None:
        carried = min(carried, to_decimal(cap))
    return to_decimal(budgeted) + carried


def _quarter(target: date) -> tuple[int, int]:
    return target.year, (target.month - 1) // 3


def cadence_boundary_reached(rollover_type: RolloverType, period: Period) -> bool:
    """True when the period closes the category's rollover cadence."""
    following = period.end + timedelta(days=1)
    if rollover_type == RolloverType.monthly:
        return True
    if rollover_type == RolloverType.quarterly:
        return _quarter(following) != _quarter(period.start)
    if rollover_type == RolloverType.annual:
        return following.year != period.start.year
    return False


def compute_rollover_out(
    record: PeriodCategoryRecord, category: BudgetCategoryIn, period: Period
) -> Decimal:
    if not category.carries_rollover:
        return ZERO
    if cadence_boundary_reached(category.rollover_type, period):
        surplus = record.effective_budget - record.actual_amount
        carried = max(surplus, ZERO)
    else:
        carried = max(record.rollover_in, ZERO)
    if category.rollover_cap is not None:
        carried = min(carried, category.rollover_cap)
    return round_storage(carried)


def index_categories(
    budget: BudgetIn, categories: Sequence[BudgetCategoryIn]
) -> dict[int, BudgetCategoryIn]:
    indexed: dict[int, BudgetCategoryIn] = {}
    for category in categories:
        if category.budget_id != budget.id:
            raise InconsistentCategoryReferenceError(category.id, budget.id)
        if category.amount < 0:
            raise NegativeAllocationError(category.id, category.amount)
        indexed[category.id] = category
    return indexed


def _new_category_record(
    budget: BudgetIn,
    category: BudgetCategoryIn,
    period_start: date,
    rollover_in: Decimal,
) -> PeriodCategoryRecord:
    return PeriodCategoryRecord(
        budget_id=budget.id,
        budget_category_id=category.id,
        period_start=period_start,
        budgeted_amount=category.amount,
        rollover_in=rollover_in,
        effective_budget=effective_budget(category.amount, rollover_in, category.rollover_cap),
        category_id=category.category_id,
    )


def _total_budgeted(
    records: Iterable[PeriodCategoryRecord], by_id: Mapping[int, BudgetCategoryIn]
) -> Decimal:
    return sum(
        (
            r.budgeted_amount
            for r in records
            if r.budget_category_id in by_id and not by_id[r.budget_category_id].is_income
        ),
        ZERO,
    )


def open_period(
    budget: BudgetIn,
    categories: Sequence[BudgetCategoryIn],
    period: Period,
    *,
    ledger: Optional[PeriodLedger] = None,
    status: PeriodStatus = PeriodStatus.open,
) -> tuple[PeriodRecord, list[PeriodCategoryRecord]]:
    """Build the opening records of a period from the current allocations.

    Rollover balances come from the immediately prior period when it is
    CLOSED in ``ledger``. PROJECTED placeholders never inherit balances.
    """
    by_id = index_categories(budget, categories)
    carry: dict[int, Decimal] = {}
    if ledger is not None and status != PeriodStatus.projected:
        prior_window = previous_period(budget, period)
        prior = ledger.period(budget.id, prior_window.start)
        if prior is not None and prior.status == PeriodStatus.closed:
            carry = {
                r.budget_category_id: r.rollover_out
                for r in ledger.categories_for(budget.id, prior.period_start)
            }
    records = [
        _new_category_record(budget, c, period.start, carry.get(c.id, ZERO))
        for c in categories
    ]
    record = PeriodRecord(
        budget_id=budget.id,
        period_start=period.start,
        period_end=period.end,
        status=status,
        total_budgeted=_total_budgeted(records, by_id),
    )
    return record, records


def _replay(budget: BudgetIn, ledger: PeriodLedger, period: PeriodRecord) -> SettlementResult:
    following = next_period(budget, period.window)
    successor = ledger.period(budget.id, following.start) if following else None
    next_records = (
        tuple(ledger.categories_for(budget.id, following.start)) if successor else ()
    )
    logger.debug(
        f"settlement_replayed: budget={budget.id} period={period.period_start}"
    )
    return SettlementResult(
        period=period,
        categories=tuple(ledger.categories_for(budget.id, period.period_start)),
        next_period=successor,
        next_categories=next_records,
        replayed=True,
    )


def _open_successor(
    budget: BudgetIn,
    categories: Sequence[BudgetCategoryIn],
    by_id: Mapping[int, BudgetCategoryIn],
    ledger: PeriodLedger,
    closing: Period,
    window: Period,
    carry: Mapping[int, Decimal],
) -> tuple[PeriodRecord, list[PeriodCategoryRecord]]:
    if window.start <= closing.end:
        raise InvalidPeriodStateError(
            f"Budget {budget.id}: successor {window.start} does not follow {closing.start}"
        )
    existing = ledger.period(budget.id, window.start)
    if existing is not None and existing.status == PeriodStatus.closed:
        raise InvalidPeriodStateError(
            f"Budget {budget.id}: successor period {window.start} is already closed"
        )

    records: list[PeriodCategoryRecord] = []
    for category in categories:
        rollover_in = carry.get(category.id, ZERO)
        current = ledger.category(budget.id, category.id, window.start)
        if current is None:
            records.append(_new_category_record(budget, category, window.start, rollover_in))
            continue
        records.append(
            replace(
                current,
                rollover_in=rollover_in,
                effective_budget=effective_budget(
                    current.budgeted_amount, rollover_in, category.rollover_cap
                ),
            )
        )

    if existing is None:
        successor = PeriodRecord(
            budget_id=budget.id, period_start=window.start, period_end=window.end
        )
    else:
        successor = replace(existing, status=PeriodStatus.open)
    return replace(successor, total_budgeted=_total_budgeted(records, by_id)), records


def settle_period(
    budget: BudgetIn,
    categories: Sequence[BudgetCategoryIn],
    ledger: PeriodLedger,
    period_start: date,
    *,
    actuals: Optional[Mapping[int, Decimal]] = None,
) -> SettlementResult:
    """Close the period starting at ``period_start`` and open its successor.

    Settling an already CLOSED period returns the stored records unchanged.
    The last period of a budget with a ``period_end`` has no successor.
    When ``actuals`` is given it replaces every record's ``actual_amount``
    before rollovers are computed.
    """
    period = ledger.period(budget.id, period_start)
    if period is None:
        raise PeriodNotFoundError(
            f"Budget {budget.id} has no period starting {period_start}"
        )
    if period.status == PeriodStatus.closed:
        return _replay(budget, ledger, period)
    if period.status == PeriodStatus.projected:
        raise InvalidPeriodStateError(
            f"Budget {budget.id}: projected period {period_start} cannot be settled"
        )

    window = period.window
    prior_window = previous_period(budget, window)
    prior = ledger.period(budget.id, prior_window.start)
    if prior is not None and prior.status != PeriodStatus.closed:
        raise PriorPeriodNotClosedError(budget.id, prior.period_start, period_start)

    by_id = index_categories(budget, categories)
    settled: list[PeriodCategoryRecord] = []
    income = ZERO
    expenses = ZERO
    for record in ledger.categories_for(budget.id, period_start):
        category = by_id.get(record.budget_category_id)
        if category is None:
            raise InconsistentCategoryReferenceError(record.budget_category_id, budget.id)
        if record.budgeted_amount < 0:
            raise NegativeAllocationError(record.budget_category_id, record.budgeted_amount)
        actual = (
            record.actual_amount
            if actuals is None
            else to_decimal(actuals.get(record.budget_category_id, ZERO))
        )
        updated = replace(record, actual_amount=actual)
        updated = replace(updated, rollover_out=compute_rollover_out(updated, category, window))
        settled.append(updated)
        if category.is_income:
            income += actual
        else:
            expenses += actual

    closed = replace(
        period,
        status=PeriodStatus.closed,
        actual_income=income,
        actual_expenses=expenses,
    )
    carry = {r.budget_category_id: r.rollover_out for r in settled}
    following = next_period(budget, window)
    successor: Optional[PeriodRecord] = None
    successor_records: list[PeriodCategoryRecord] = []
    if following is not None:
        successor, successor_records = _open_successor(
            budget, categories, by_id, ledger, window, following, carry
        )
    logger.info(
        f"settlement_closed: budget={budget.id} period={period_start} "
        f"categories={len(settled)} carried={sum(carry.values(), ZERO)} "
        f"next={successor.period_start if successor else None}"
    )
    return SettlementResult(
        period=closed,
        categories=tuple(settled),
        next_period=successor,
        next_categories=tuple(successor_records),
    )


def project_periods(
    budget: BudgetIn,
    categories: Sequence[BudgetCategoryIn],
    ledger: PeriodLedger,
    *,
    after: Period,
    count: int,
) -> list[tuple[PeriodRecord, list[PeriodCategoryRecord]]]:
    """Forward-looking PROJECTED placeholders for windows not yet in the ledger."""
    projected: list[tuple[PeriodRecord, list[PeriodCategoryRecord]]] = []
    window = after
    for _ in range(max(count, 0)):
        window = next_period(budget, window)
        if window is None:
            break
        if ledger.period(budget.id, window.start) is not None:
            continue
        projected.append(
            open_period(budget, categories, window, status=PeriodStatus.projected)
        )
    return projected
