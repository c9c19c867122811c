from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Iterable, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aggregation import aggregate_spending, signed_totals
from alerts import AlertCrossing, projected_overspend, threshold_crossings
from breakdown import BudgetSummary, summarize_budget
from errors import StrategyChangeNotAllowedError
from models import (
    Budget,
    BudgetPeriod,
    BudgetPeriodCategory,
    BudgetStrategy,
    PeriodStatus,
)
from money import ZERO
from periods import Period, elapsed_days, local_today, period_for_budget
from schemas import (
    BudgetCategoryIn,
    BudgetConfigIn,
    BudgetIn,
    LedgerTransactionIn,
    ScheduledBillIn,
)
from settlement import (
    PeriodCategoryRecord,
    PeriodLedger,
    PeriodRecord,
    SettlementResult,
    open_period,
    project_periods,
    settle_period,
)
from velocity import BudgetVelocity, velocity_for_period

logger = logging.getLogger(__name__)


def get_current_user_id() -> int:
    return 1


def budget_snapshot(budget: Budget) -> BudgetIn:
    config = json.loads(budget.config_json) if budget.config_json else {}
    return BudgetIn(
        id=budget.id,
        user_id=budget.user_id,
        name=budget.name,
        budget_type=budget.budget_type,
        strategy=budget.strategy,
        period_start=budget.period_start,
        period_end=budget.period_end,
        base_income=budget.base_income,
        income_linked=budget.income_linked,
        currency_code=budget.currency_code,
        is_active=budget.is_active,
        config=BudgetConfigIn(**config),
    )


def category_snapshots(budget: Budget) -> list[BudgetCategoryIn]:
    return [
        BudgetCategoryIn.model_validate(row)
        for row in budget.categories
        if row.deleted_at is None
    ]


def period_record(row: BudgetPeriod) -> PeriodRecord:
    return PeriodRecord(
        budget_id=row.budget_id,
        period_start=row.period_start,
        period_end=row.period_end,
        status=row.status,
        total_budgeted=row.total_budgeted,
        actual_income=row.actual_income,
        actual_expenses=row.actual_expenses,
        id=row.id,
    )


def period_category_record(row: BudgetPeriodCategory, period: BudgetPeriod) -> PeriodCategoryRecord:
    return PeriodCategoryRecord(
        budget_id=period.budget_id,
        budget_category_id=row.budget_category_id,
        period_start=period.period_start,
        budgeted_amount=row.budgeted_amount,
        rollover_in=row.rollover_in,
        effective_budget=row.effective_budget,
        actual_amount=row.actual_amount,
        rollover_out=row.rollover_out,
        category_id=row.category_id,
        id=row.id,
    )


class BudgetPeriodService:
    """Persistence glue around the pure settlement engine.

    Every method loads a snapshot, lets the engine compute the new records
    and writes them back in one transaction.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get_budget(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise ValueError("Budget not found")
        return budget

    def _period_rows(self, budget_id: int, *, for_update: bool = False) -> list[BudgetPeriod]:
        stmt = (
            select(BudgetPeriod)
            .where(BudgetPeriod.budget_id == budget_id)
            .order_by(BudgetPeriod.period_start)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return list(self.session.scalars(stmt).all())

    def _period_row(
        self, budget_id: int, period_start: date, *, for_update: bool = False
    ) -> Optional[BudgetPeriod]:
        stmt = select(BudgetPeriod).where(
            BudgetPeriod.budget_id == budget_id,
            BudgetPeriod.period_start == period_start,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.scalar(stmt)

    def ledger(self, budget_id: int, *, for_update: bool = False) -> PeriodLedger:
        rows = self._period_rows(budget_id, for_update=for_update)
        return PeriodLedger(
            (period_record(row) for row in rows),
            (
                period_category_record(item, row)
                for row in rows
                for item in row.period_categories
            ),
        )

    def _write(
        self, record: PeriodRecord, categories: Iterable[PeriodCategoryRecord]
    ) -> BudgetPeriod:
        row = self._period_row(record.budget_id, record.period_start)
        if row is None:
            row = BudgetPeriod(budget_id=record.budget_id, period_start=record.period_start)
            self.session.add(row)
        row.period_end = record.period_end
        row.status = record.status
        row.total_budgeted = record.total_budgeted
        row.actual_income = record.actual_income
        row.actual_expenses = record.actual_expenses
        self.session.flush()

        existing = {item.budget_category_id: item for item in row.period_categories}
        for item in categories:
            target = existing.get(item.budget_category_id)
            if target is None:
                target = BudgetPeriodCategory(
                    budget_period_id=row.id,
                    budget_category_id=item.budget_category_id,
                )
                self.session.add(target)
                row.period_categories.append(target)
            target.category_id = item.category_id
            target.budgeted_amount = item.budgeted_amount
            target.rollover_in = item.rollover_in
            target.effective_budget = item.effective_budget
            target.actual_amount = item.actual_amount
            target.rollover_out = item.rollover_out
        self.session.flush()
        return row

    def _create_period(self, budget: Budget, window: Period) -> BudgetPeriod:
        snapshot = budget_snapshot(budget)
        record, records = open_period(
            snapshot,
            category_snapshots(budget),
            window,
            ledger=self.ledger(budget.id),
        )
        try:
            row = self._write(record, records)
            self.session.commit()
        except IntegrityError:
            # Another writer opened the same window first.
            self.session.rollback()
            row = self._period_row(budget.id, window.start)
            if row is None:
                raise
            return row
        logger.info(
            f"period_opened: budget={budget.id} start={window.start} end={window.end}"
        )
        return row

    def get_or_create_current_period(
        self, budget_id: int, today: Optional[date] = None
    ) -> BudgetPeriod:
        budget = self.get_budget(budget_id)
        window = period_for_budget(budget_snapshot(budget), today or local_today())
        row = self._period_row(budget.id, window.start)
        if row is not None:
            if row.status == PeriodStatus.projected:
                row.status = PeriodStatus.open
                self.session.commit()
            return row
        return self._create_period(budget, window)

    def post_transaction(
        self, budget_id: int, txn: LedgerTransactionIn
    ) -> list[BudgetPeriodCategory]:
        """Fold one ledger transaction into the OPEN period covering its date.

        Returns the touched period-category rows; empty when no OPEN period
        covers the date or nothing in the budget matches.
        """
        budget = self.get_budget(budget_id)
        snapshot = budget_snapshot(budget)
        row = self._period_row(
            budget.id, period_for_budget(snapshot, txn.date).start, for_update=True
        )
        if row is None or row.status != PeriodStatus.open:
            self.session.rollback()
            return []
        # Locked re-read; refreshes any actuals already cached in the session.
        items = self.session.scalars(
            select(BudgetPeriodCategory)
            .where(BudgetPeriodCategory.budget_period_id == row.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()

        categories = category_snapshots(budget)
        window = Period(row.period_start.isoformat(), row.period_start, row.period_end)
        by_category = {item.budget_category_id: item for item in items}
        signed = signed_totals(
            window,
            [txn],
            categories,
            excluded_account_ids=snapshot.config.excluded_account_ids,
        )
        touched: list[BudgetPeriodCategory] = []
        for category in categories:
            item = by_category.get(category.id)
            delta = signed[category.id]
            if item is None or not delta:
                continue
            if category.is_income:
                item.actual_amount = item.actual_amount + delta
            else:
                # Expense actuals are magnitudes; refunds never push them below zero.
                item.actual_amount = max(item.actual_amount - delta, ZERO)
            touched.append(item)
        self.session.commit()
        return touched

    def _settle(
        self,
        budget: Budget,
        period_start: date,
        transactions: Optional[Sequence[LedgerTransactionIn]] = None,
    ) -> SettlementResult:
        snapshot = budget_snapshot(budget)
        categories = category_snapshots(budget)
        ledger = self.ledger(budget.id, for_update=True)
        actuals: Optional[Mapping[int, object]] = None
        if transactions is not None:
            period = ledger.period(budget.id, period_start)
            if period is not None:
                actuals = aggregate_spending(
                    period.window,
                    transactions,
                    categories,
                    excluded_account_ids=snapshot.config.excluded_account_ids,
                )
        result = settle_period(snapshot, categories, ledger, period_start, actuals=actuals)
        if result.replayed:
            return result
        try:
            self._write(result.period, result.categories)
            if result.next_period is not None:
                self._write(result.next_period, result.next_categories)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return result

    def close_period(
        self,
        budget_id: int,
        period_start: date,
        *,
        transactions: Optional[Sequence[LedgerTransactionIn]] = None,
    ) -> SettlementResult:
        """Settle one period and open its successor atomically.

        With ``transactions`` the period's actuals are recomputed from that
        ledger snapshot first. Closing a CLOSED period is a no-op.
        """
        return self._settle(self.get_budget(budget_id), period_start, transactions)

    def close_expired_periods(self, today: Optional[date] = None) -> int:
        """Close every OPEN period that ended before ``today``, across all budgets.

        A failing budget is logged and skipped; the others still close.
        """
        today = today or local_today()
        budgets = self.session.scalars(
            select(Budget).where(Budget.is_active.is_(True)).order_by(Budget.id)
        ).all()
        closed = 0
        for budget in budgets:
            try:
                while True:
                    expired = [
                        row
                        for row in self._period_rows(budget.id)
                        if row.status == PeriodStatus.open and row.period_end < today
                    ]
                    if not expired:
                        break
                    self._settle(budget, expired[0].period_start)
                    closed += 1
            except Exception:
                self.session.rollback()
                logger.exception(f"period_close_failed: budget={budget.id}")
        return closed

    def project_periods(
        self, budget_id: int, count: int = 3, today: Optional[date] = None
    ) -> list[BudgetPeriod]:
        current = self.get_or_create_current_period(budget_id, today)
        budget = self.get_budget(budget_id)
        window = Period(
            current.period_start.isoformat(), current.period_start, current.period_end
        )
        placeholders = project_periods(
            budget_snapshot(budget),
            category_snapshots(budget),
            self.ledger(budget.id),
            after=window,
            count=count,
        )
        rows = [self._write(record, records) for record, records in placeholders]
        self.session.commit()
        return rows


class BudgetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.periods = BudgetPeriodService(session, self.user_id)

    def list_active(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id, Budget.is_active.is_(True))
            .order_by(Budget.name)
        )
        return list(self.session.scalars(stmt).all())

    def summary(
        self,
        budget_id: int,
        transactions: Iterable[LedgerTransactionIn],
        *,
        today: Optional[date] = None,
        category_names: Optional[Mapping[int, str]] = None,
    ) -> BudgetSummary:
        row = self.periods.get_or_create_current_period(budget_id, today)
        budget = self.periods.get_budget(budget_id)
        return summarize_budget(
            budget_snapshot(budget),
            category_snapshots(budget),
            transactions,
            period=Period(row.period_start.isoformat(), row.period_start, row.period_end),
            period_categories=[period_category_record(item, row) for item in row.period_categories],
            category_names=category_names,
        )

    def velocity(
        self,
        budget_id: int,
        transactions: Iterable[LedgerTransactionIn],
        bills: Iterable[ScheduledBillIn] = (),
        *,
        today: Optional[date] = None,
    ) -> BudgetVelocity:
        today = today or local_today()
        summary = self.summary(budget_id, transactions, today=today)
        return velocity_for_period(summary, summary.period, bills, today=today)

    def alerts(
        self,
        budget_id: int,
        transactions: Iterable[LedgerTransactionIn],
        *,
        today: Optional[date] = None,
    ) -> list[AlertCrossing]:
        today = today or local_today()
        summary = self.summary(budget_id, transactions, today=today)
        budget = self.periods.get_budget(budget_id)
        elapsed, total = elapsed_days(summary.period, today)
        return threshold_crossings(
            category_snapshots(budget), summary.categories
        ) + projected_overspend(summary.categories, elapsed, total)

    def change_strategy(self, budget_id: int, strategy: BudgetStrategy) -> Budget:
        budget = self.periods.get_budget(budget_id)
        if budget.strategy == strategy:
            return budget
        committed = self.session.scalar(
            select(BudgetPeriodCategory.id)
            .join(BudgetPeriod, BudgetPeriodCategory.budget_period_id == BudgetPeriod.id)
            .where(
                BudgetPeriod.budget_id == budget.id,
                BudgetPeriod.status == PeriodStatus.closed,
                BudgetPeriodCategory.rollover_out > 0,
            )
            .limit(1)
        )
        if committed is not None:
            raise StrategyChangeNotAllowedError(
                f"Budget {budget.id} has committed rollovers; create a new budget instead"
            )
        budget.strategy = strategy
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def deactivate_budget(self, budget_id: int) -> Budget:
        budget = self.periods.get_budget(budget_id)
        budget.is_active = False
        budget.updated_at = datetime.utcnow()
        self.session.commit()
        self.session.refresh(budget)
        logger.info(f"budget_deactivated: budget={budget.id}")
        return budget
