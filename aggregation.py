"""Spending aggregation over a period window.

Ledger amounts are signed: negative is money out, positive is money in.
Expense and transfer allocations report spend as a non-negative magnitude,
income allocations report the raw signed sum.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

from models import CategoryGroup, TransactionStatus
from money import ZERO
from periods import Period
from schemas import BudgetCategoryIn, LedgerTransactionIn


def _in_scope(
    txn: LedgerTransactionIn, period: Period, excluded_account_ids: frozenset[int]
) -> bool:
    if txn.status == TransactionStatus.void:
        return False
    if txn.account_id is not None and txn.account_id in excluded_account_ids:
        return False
    return period.contains(txn.date)


def signed_totals(
    period: Period,
    transactions: Iterable[LedgerTransactionIn],
    categories: Sequence[BudgetCategoryIn],
    *,
    excluded_account_ids: Iterable[int] = (),
) -> dict[int, Decimal]:
    """Sum signed ledger amounts per budget category id.

    Every category gets an entry, zero when nothing matched. Transactions
    without a matching allocation are ignored.
    """
    excluded = frozenset(excluded_account_ids)
    by_category_id: dict[int, Decimal] = defaultdict(lambda: ZERO)
    by_transfer_account: dict[int, Decimal] = defaultdict(lambda: ZERO)

    for txn in transactions:
        if not _in_scope(txn, period, excluded):
            continue
        if txn.is_transfer:
            # Only outflows towards the destination account count.
            if txn.transfer_account_id is not None and txn.amount < 0:
                by_transfer_account[txn.transfer_account_id] += txn.amount
            continue
        if txn.splits:
            for split in txn.splits:
                if split.category_id is not None:
                    by_category_id[split.category_id] += split.amount
        elif txn.category_id is not None:
            by_category_id[txn.category_id] += txn.amount

    totals: dict[int, Decimal] = {}
    for category in categories:
        if category.is_transfer:
            key = category.transfer_account_id
            totals[category.id] = by_transfer_account.get(key, ZERO) if key is not None else ZERO
        elif category.category_id is not None:
            totals[category.id] = by_category_id.get(category.category_id, ZERO)
        else:
            totals[category.id] = ZERO
    return totals


def spend_from_signed(category: BudgetCategoryIn, signed: Decimal) -> Decimal:
    if category.is_income:
        return signed
    return max(-signed, ZERO)


def aggregate_spending(
    period: Period,
    transactions: Iterable[LedgerTransactionIn],
    categories: Sequence[BudgetCategoryIn],
    *,
    excluded_account_ids: Iterable[int] = (),
) -> dict[int, Decimal]:
    totals = signed_totals(
        period, transactions, categories, excluded_account_ids=excluded_account_ids
    )
    return {c.id: spend_from_signed(c, totals[c.id]) for c in categories}


def actual_income(
    categories: Sequence[BudgetCategoryIn], actuals: Mapping[int, Decimal]
) -> Decimal:
    return sum(
        (actuals.get(c.id, ZERO) for c in categories if c.is_income), ZERO
    )


def total_by_flex_group(
    categories: Sequence[BudgetCategoryIn], actuals: Mapping[int, Decimal]
) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for category in categories:
        pool: Optional[str] = category.pool
        if pool is None:
            continue
        totals[pool] = totals.get(pool, ZERO) + actuals.get(category.id, ZERO)
    return totals


def total_by_category_group(
    categories: Sequence[BudgetCategoryIn], actuals: Mapping[int, Decimal]
) -> dict[CategoryGroup, Decimal]:
    totals: dict[CategoryGroup, Decimal] = {group: ZERO for group in CategoryGroup}
    for category in categories:
        if category.is_income or category.category_group is None:
            continue
        totals[category.category_group] += actuals.get(category.id, ZERO)
    return totals
